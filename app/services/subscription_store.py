from __future__ import annotations

import logging
from typing import Any

from postgrest.exceptions import APIError
from supabase import Client

from app.core.errors import AccessCheckFailure, PersistenceFailure

logger = logging.getLogger(__name__)

SUBSCRIPTIONS_TABLE = "subscriptions"
EVENTS_TABLE = "subscription_events"
ACCESS_FUNCTION = "subscription_access_by_email"


def _first_row(data: Any) -> dict[str, Any] | None:
    if isinstance(data, list):
        return data[0] if data else None
    if isinstance(data, dict):
        return data
    return None


class SubscriptionStore:
    """
    Every read and write against the subscription tables goes through here.
    Storage errors on primary writes surface as PersistenceFailure; the
    event and identity helpers let APIError propagate so their callers can
    decide how much a failure matters.
    """

    def __init__(self, client: Client):
        self.client = client

    # ---------------- SUBSCRIPTIONS ----------------
    def upsert_by_email(self, values: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = (
                self.client
                .table(SUBSCRIPTIONS_TABLE)
                .upsert(values, on_conflict="buyer_email")
                .execute()
            )
        except APIError as exc:
            logger.error("subscription_upsert_failed buyer_email=%s error=%s", values.get("buyer_email"), exc.message)
            raise PersistenceFailure("Upsert failed", details=exc.message) from exc

        row = _first_row(resp.data)
        if not row or not row.get("id"):
            raise PersistenceFailure("Upsert failed", details="No subscription row returned")
        return row

    def find_id_by_subscriber_code(self, subscriber_code: str) -> Any | None:
        try:
            resp = (
                self.client
                .table(SUBSCRIPTIONS_TABLE)
                .select("id")
                .eq("subscriber_code", subscriber_code)
                .limit(2)
                .execute()
            )
        except APIError as exc:
            logger.error("subscription_lookup_failed subscriber_code=%s error=%s", subscriber_code, exc.message)
            raise PersistenceFailure("Lookup failed", details=exc.message) from exc

        rows = resp.data or []
        if len(rows) > 1:
            # Ambiguous code: refuse to pick one of the rows.
            logger.error("subscription_lookup_ambiguous subscriber_code=%s matches=%s", subscriber_code, len(rows))
            return None
        row = _first_row(rows)
        return row.get("id") if row else None

    def update_by_id(self, subscription_id: Any, values: dict[str, Any]) -> None:
        try:
            (
                self.client
                .table(SUBSCRIPTIONS_TABLE)
                .update(values)
                .eq("id", subscription_id)
                .execute()
            )
        except APIError as exc:
            logger.error("subscription_update_failed id=%s error=%s", subscription_id, exc.message)
            raise PersistenceFailure("Update failed", details=exc.message) from exc

    def link_user_id(self, subscription_id: Any, user_id: str) -> None:
        (
            self.client
            .table(SUBSCRIPTIONS_TABLE)
            .update({"user_id": user_id})
            .eq("id", subscription_id)
            .execute()
        )

    # ---------------- EVENTS ----------------
    def event_exists(self, event_id: str) -> bool:
        resp = (
            self.client
            .table(EVENTS_TABLE)
            .select("id")
            .eq("event_id", event_id)
            .limit(1)
            .execute()
        )
        return bool(resp.data)

    def insert_event(self, row: dict[str, Any]) -> None:
        self.client.table(EVENTS_TABLE).insert(row).execute()

    # ---------------- ACCESS ----------------
    def access_by_email(self, email: str) -> dict[str, Any] | None:
        try:
            resp = self.client.rpc(ACCESS_FUNCTION, {"p_email": email}).execute()
        except APIError as exc:
            logger.error("subscription_access_failed email=%s error=%s", email, exc.message)
            raise AccessCheckFailure(details=exc.message) from exc
        return _first_row(resp.data)
