from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from app.core.plans import STATUS_ACTIVE, STATUS_INACTIVE, classify_plan
from app.schemas.hotmart import WebhookEnvelope
from app.services.dates import next_cycle_estimate, normalize_timestamp_iso, to_iso
from app.services.event_recorder import record_subscription_event
from app.services.subscription_keys import (
    dig,
    optional_subscriber_code,
    resolve_buyer_email,
    resolve_subscriber_code,
    resolve_subscription_id,
)
from app.services.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)

EVENT_PURCHASE_APPROVED = "PURCHASE_APPROVED"
EVENT_PURCHASE_PROTEST = "PURCHASE_PROTEST"
EVENT_PURCHASE_CHARGEBACK = "PURCHASE_CHARGEBACK"
EVENT_PURCHASE_DELAYED = "PURCHASE_DELAYED"
EVENT_SUBSCRIPTION_CANCELLATION = "SUBSCRIPTION_CANCELLATION"

APPROVED_EVENTS = frozenset({EVENT_PURCHASE_APPROVED})
INVALID_EVENTS = frozenset({EVENT_PURCHASE_PROTEST, EVENT_PURCHASE_CHARGEBACK, EVENT_PURCHASE_DELAYED})
CANCELLATION_EVENTS = frozenset({EVENT_SUBSCRIPTION_CANCELLATION})

IGNORED_RESPONSE = {"message": "Ignored: wrong event for this endpoint"}


def route_event(envelope: WebhookEnvelope, accepted: frozenset[str], default: str) -> str | None:
    """
    Event name this endpoint should process, or None when the event
    belongs to another endpoint. A missing name falls back to `default`.
    """
    if not envelope.event:
        return default
    if not isinstance(envelope.event, str):
        return None
    if envelope.event in accepted:
        return envelope.event
    return None


# ---------------- STATE MERGE ----------------
def approved_state(data: dict[str, Any], now: datetime | None = None) -> dict[str, Any]:
    date_next_charge = normalize_timestamp_iso(dig(data, "purchase", "date_next_charge"))
    if date_next_charge is None:
        date_next_charge = to_iso(next_cycle_estimate(now))

    values: dict[str, Any] = {
        "buyer_email": resolve_buyer_email(data),
        "plan": classify_plan(
            dig(data, "product", "name"),
            dig(data, "subscription", "plan", "name"),
        ),
        "status": STATUS_ACTIVE,
        "date_next_charge": date_next_charge,
        "cancel_pending": False,
    }

    # Omitted rather than nulled so an already-known code survives.
    subscriber_code = optional_subscriber_code(data)
    if subscriber_code is not None:
        values["subscriber_code"] = subscriber_code
    return values


def invalid_state(data: dict[str, Any]) -> dict[str, Any]:
    return {
        "buyer_email": resolve_buyer_email(data),
        "status": STATUS_INACTIVE,
        "cancel_pending": False,
    }


def cancellation_state(data: dict[str, Any]) -> dict[str, Any]:
    return {
        "cancel_pending": True,
        "date_next_charge": normalize_timestamp_iso(dig(data, "date_next_charge")),
    }


# ---------------- EVENT HANDLERS ----------------
def apply_purchase_approved(
    store: SubscriptionStore,
    envelope: WebhookEnvelope,
    event_type: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    values = approved_state(envelope.data, now)
    logger.info(
        "purchase_approved_parsed event=%s buyer_email=%s plan=%s date_next_charge=%s subscriber_code=%s",
        event_type,
        values["buyer_email"],
        values["plan"],
        values["date_next_charge"],
        values.get("subscriber_code"),
    )

    row = store.upsert_by_email(values)
    record_subscription_event(store, row["id"], envelope.event_id, event_type, envelope.raw())

    return {
        "success": True,
        "action": "upserted",
        "buyer_email": values["buyer_email"],
        "subscriber_code": values.get("subscriber_code"),
        "plan": values["plan"],
        "status": values["status"],
        "date_next_charge": values["date_next_charge"],
    }


def apply_purchase_invalid(
    store: SubscriptionStore,
    envelope: WebhookEnvelope,
    event_type: str,
) -> dict[str, Any]:
    values = invalid_state(envelope.data)
    logger.info("purchase_invalid_parsed event=%s buyer_email=%s", event_type, values["buyer_email"])

    row = store.upsert_by_email(values)
    record_subscription_event(store, row["id"], envelope.event_id, event_type, envelope.raw())

    return {
        "success": True,
        "action": "set_inactive",
        "buyer_email": values["buyer_email"],
        "event_type": event_type,
        "status": STATUS_INACTIVE,
    }


def apply_subscription_cancellation(
    store: SubscriptionStore,
    envelope: WebhookEnvelope,
    event_type: str,
) -> dict[str, Any]:
    subscriber_code = resolve_subscriber_code(envelope.data)
    values = cancellation_state(envelope.data)

    subscription_id = resolve_subscription_id(store, subscriber_code)
    logger.info(
        "subscription_cancellation_parsed event=%s subscription_id=%s date_next_charge=%s",
        event_type,
        subscription_id,
        values["date_next_charge"],
    )

    store.update_by_id(subscription_id, values)
    record_subscription_event(store, subscription_id, envelope.event_id, event_type, envelope.raw())

    return {
        "success": True,
        "action": "set_cancel_pending_true",
        "subscriber_code": subscriber_code,
        "date_next_charge": values["date_next_charge"],
    }
