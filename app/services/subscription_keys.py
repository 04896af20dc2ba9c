from __future__ import annotations

from typing import Any

from app.core.errors import MissingIdentifier, SubscriptionNotFound
from app.services.subscription_store import SubscriptionStore


def dig(data: Any, *path: str) -> Any:
    """Walk nested dicts, returning None as soon as a step is missing."""
    current = data
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def normalize_email(raw: Any) -> str:
    if raw is None:
        return ""
    return str(raw).strip().lower()


def resolve_buyer_email(data: dict[str, Any]) -> str:
    email = normalize_email(dig(data, "buyer", "email"))
    if not email:
        raise MissingIdentifier("Email is required")
    return email


def resolve_subscriber_code(data: dict[str, Any]) -> str:
    # Used verbatim: codes are opaque and compared exactly.
    code = dig(data, "subscriber", "code")
    if code is None or code == "":
        raise MissingIdentifier("Missing subscriber.code")
    return code if isinstance(code, str) else str(code)


def optional_subscriber_code(data: dict[str, Any]) -> str | None:
    code = dig(data, "subscription", "subscriber", "code")
    if code is None or code == "":
        return None
    return code if isinstance(code, str) else str(code)


def resolve_subscription_id(store: SubscriptionStore, subscriber_code: str) -> Any:
    subscription_id = store.find_id_by_subscriber_code(subscriber_code)
    if not subscription_id:
        raise SubscriptionNotFound(subscriber_code=subscriber_code)
    return subscription_id
