from __future__ import annotations

import logging
from typing import Any

from email_validator import EmailNotValidError, validate_email

from app.core.errors import MissingIdentifier
from app.services.identity import UserDirectory, link_identity
from app.services.subscription_keys import normalize_email
from app.services.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)


def resolve_verification_email(raw: Any) -> str:
    email = normalize_email(raw)
    if not email:
        raise MissingIdentifier("Email is required and must be valid")

    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        raise MissingIdentifier("Email is required and must be valid")

    return email


def verify_subscription(
    store: SubscriptionStore,
    directory: UserDirectory | None,
    email: str,
) -> dict[str, Any]:
    """
    Read-only entitlement check. The only write is the best-effort
    `user_id` backfill when the access record has no linked identity.
    """
    access = store.access_by_email(email)

    if not access:
        logger.info("subscription_access_missing email=%s", email)
        return {
            "hasActiveSubscription": False,
            "message": "No subscription record",
        }

    user_id = access.get("user_id")
    if not user_id:
        user_id = link_identity(store, directory, access.get("subscription_id"), email)

    has_access = bool(access.get("has_access"))
    logger.info("subscription_access_checked email=%s has_access=%s", email, has_access)

    return {
        "hasActiveSubscription": has_access,
        "plan": access.get("plan"),
        "status": access.get("status"),
        "date_next_charge": access.get("date_next_charge"),
        "cancel_pending": bool(access.get("cancel_pending")),
        "user_id": str(user_id) if user_id else None,
        "message": "Active subscription found" if has_access else "Inactive subscription",
    }
