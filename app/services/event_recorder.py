from __future__ import annotations

import logging
from typing import Any

from postgrest.exceptions import APIError

from app.core.errors import AuditWriteFailure
from app.services.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)


def _write_event(
    store: SubscriptionStore,
    subscription_id: Any,
    event_id: str | None,
    event_type: str,
    payload: dict[str, Any],
) -> bool:
    try:
        if event_id and store.event_exists(event_id):
            return False
        store.insert_event({
            "subscription_id": subscription_id,
            "event_id": event_id,
            "event_type": event_type,
            "payload": payload,
        })
    except APIError as exc:
        raise AuditWriteFailure(details=exc.message) from exc
    return True


def record_subscription_event(
    store: SubscriptionStore,
    subscription_id: Any,
    event_id: str | None,
    event_type: str,
    payload: dict[str, Any],
) -> bool:
    """
    Append the audit row for an event whose subscription write already
    committed. Returns True when a row was written.

    This MUST NOT fail the request: the subscription row is authoritative,
    the event log is diagnostic.
    """
    try:
        written = _write_event(store, subscription_id, event_id, event_type, payload)
    except AuditWriteFailure as exc:
        logger.error(
            "subscription_event_insert_failed subscription_id=%s event_id=%s event=%s error=%s",
            subscription_id,
            event_id,
            event_type,
            exc.details.get("details"),
        )
        return False
    except Exception:
        logger.exception(
            "subscription_event_insert_failed subscription_id=%s event_id=%s event=%s",
            subscription_id,
            event_id,
            event_type,
        )
        return False

    if not written:
        logger.info(
            "subscription_event_duplicate subscription_id=%s event_id=%s event=%s",
            subscription_id,
            event_id,
            event_type,
        )
        return False

    logger.info(
        "subscription_event_recorded subscription_id=%s event_id=%s event=%s",
        subscription_id,
        event_id,
        event_type,
    )
    return True
