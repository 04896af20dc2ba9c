import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import Settings, load_settings
from app.core.errors import SubscriptionSyncError
from app.middleware.request_context import CORS_HEADERS, NO_STORE_HEADERS, RequestContextMiddleware

SERVICE_NAME = "hotmart-subscription-sync"
SERVICE_VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def json_response(body: dict, status_code: int) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers=NO_STORE_HEADERS)


async def handle_sync_error(request: Request, exc: SubscriptionSyncError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "request_rejected path=%s status_code=%s error=%s",
        request.url.path,
        exc.status_code,
        exc.message,
    )
    return json_response(exc.to_body(), exc.status_code)


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 405:
        logger.warning("method_not_allowed method=%s path=%s", request.method, request.url.path)
        return json_response({"error": "Method not allowed"}, 405)
    return json_response({"error": str(exc.detail)}, exc.status_code)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error path=%s", request.url.path)
    body = {"error": "Internal server error", "details": str(exc)}
    if request.url.path == "/verify-subscription":
        body["hasActiveSubscription"] = False
    return JSONResponse(body, status_code=500, headers={**CORS_HEADERS, **NO_STORE_HEADERS})


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(levelname)s | %(message)s"
    )

    app = FastAPI(
        title="Hotmart Subscription Sync",
        version=SERVICE_VERSION,
    )
    app.state.settings = settings

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=[h.strip() for h in CORS_HEADERS["Access-Control-Allow-Headers"].split(",")],
        max_age=86400,
    )

    app.add_exception_handler(SubscriptionSyncError, handle_sync_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(Exception, handle_unexpected_error)

    from app.routes.webhooks import router as webhooks_router
    from app.routes.verify import router as verify_router

    app.include_router(webhooks_router)
    app.include_router(verify_router)

    @app.get("/health")
    def health_check():
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
        }

    if not settings.is_configured:
        logger.error(
            "supabase_config_missing has_url=%s has_service_key=%s",
            bool(settings.supabase_url),
            bool(settings.supabase_service_role_key),
        )
    logger.info("%s starting up", SERVICE_NAME)
    return app


app = create_app()
