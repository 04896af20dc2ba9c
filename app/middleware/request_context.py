import time
import uuid
import logging
from typing import Callable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Max-Age": "86400",
}

NO_STORE_HEADERS = {"Cache-Control": "no-store"}


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    - Adds request_id
    - Answers bare OPTIONS probes without touching the routes
    - Logs method, path, status, latency
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        start_time = time.time()
        request.state.request_id = request_id

        if request.method == "OPTIONS":
            logger.info("cors_preflight path=%s", request.url.path)
            response = Response(
                "ok",
                status_code=200,
                headers={**CORS_HEADERS, **NO_STORE_HEADERS},
            )
            response.headers["X-Request-ID"] = request_id
            return response

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_failed request_id=%s method=%s path=%s",
                request_id,
                request.method,
                request.url.path,
            )
            raise

        duration_ms = int((time.time() - start_time) * 1000)
        client_ip = request.client.host if request.client else None

        logger.info(
            "request_completed request_id=%s method=%s path=%s status_code=%s duration_ms=%s ip=%s",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            client_ip,
        )

        response.headers.setdefault("Cache-Control", "no-store")
        response.headers["X-Request-ID"] = request_id
        return response
