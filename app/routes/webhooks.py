from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from app.core.errors import MalformedPayload
from app.dependencies.storage import get_subscription_store
from app.schemas.hotmart import WebhookEnvelope
from app.services.subscription import (
    APPROVED_EVENTS,
    CANCELLATION_EVENTS,
    EVENT_PURCHASE_APPROVED,
    EVENT_PURCHASE_PROTEST,
    EVENT_SUBSCRIPTION_CANCELLATION,
    IGNORED_RESPONSE,
    INVALID_EVENTS,
    apply_purchase_approved,
    apply_purchase_invalid,
    apply_subscription_cancellation,
    route_event,
)
from app.services.subscription_store import SubscriptionStore

router = APIRouter(prefix="/webhooks/hotmart", tags=["Webhooks"])
logger = logging.getLogger(__name__)


async def read_envelope(request: Request) -> WebhookEnvelope:
    try:
        payload = await request.json()
    except Exception:
        logger.warning("webhook_invalid_json path=%s", request.url.path)
        raise MalformedPayload("Invalid JSON payload")

    if not isinstance(payload, dict) or not isinstance(payload.get("data"), dict):
        logger.warning("webhook_missing_data path=%s event=%s", request.url.path, _event_name(payload))
        raise MalformedPayload("Invalid payload: missing data")

    try:
        envelope = WebhookEnvelope.model_validate(payload)
    except ValidationError as exc:
        logger.warning("webhook_invalid_envelope path=%s errors=%s", request.url.path, exc.error_count())
        raise MalformedPayload("Invalid payload", details=str(exc))

    logger.info("webhook_received path=%s event=%s id=%s", request.url.path, envelope.event, envelope.event_id)
    return envelope


def _event_name(payload) -> str | None:
    if isinstance(payload, dict):
        return payload.get("event")
    return None


def _ignored(envelope: WebhookEnvelope, endpoint: str) -> dict:
    logger.info("webhook_ignored endpoint=%s event=%s", endpoint, envelope.event)
    return dict(IGNORED_RESPONSE)


@router.post("/purchase-approved")
async def purchase_approved(
    request: Request,
    store: SubscriptionStore = Depends(get_subscription_store),
):
    envelope = await read_envelope(request)
    event_type = route_event(envelope, APPROVED_EVENTS, EVENT_PURCHASE_APPROVED)
    if event_type is None:
        return _ignored(envelope, "purchase-approved")

    result = await run_in_threadpool(apply_purchase_approved, store, envelope, event_type)
    logger.info("purchase_approved_applied buyer_email=%s plan=%s", result["buyer_email"], result["plan"])
    return result


@router.post("/purchase-invalid")
async def purchase_invalid(
    request: Request,
    store: SubscriptionStore = Depends(get_subscription_store),
):
    envelope = await read_envelope(request)
    event_type = route_event(envelope, INVALID_EVENTS, EVENT_PURCHASE_PROTEST)
    if event_type is None:
        return _ignored(envelope, "purchase-invalid")

    result = await run_in_threadpool(apply_purchase_invalid, store, envelope, event_type)
    logger.info("purchase_invalid_applied event=%s buyer_email=%s", event_type, result["buyer_email"])
    return result


@router.post("/subscription-cancellation")
async def subscription_cancellation(
    request: Request,
    store: SubscriptionStore = Depends(get_subscription_store),
):
    envelope = await read_envelope(request)
    event_type = route_event(envelope, CANCELLATION_EVENTS, EVENT_SUBSCRIPTION_CANCELLATION)
    if event_type is None:
        return _ignored(envelope, "subscription-cancellation")

    result = await run_in_threadpool(apply_subscription_cancellation, store, envelope, event_type)
    logger.info("subscription_cancellation_applied subscriber_code=%s", result["subscriber_code"])
    return result
