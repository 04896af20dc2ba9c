from __future__ import annotations

import logging
from typing import Any

import requests

from app.services.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)


class UserDirectory:
    """
    Supabase Auth admin lookup of a user id by email.
    Lookups are advisory: every failure degrades to None.
    """

    def __init__(self, supabase_url: str, service_role_key: str, timeout: float = 5.0):
        self.users_url = f"{supabase_url.rstrip('/')}/auth/v1/admin/users"
        self.timeout = timeout
        self.headers = {
            "apikey": service_role_key,
            "Authorization": f"Bearer {service_role_key}",
        }

    def find_user_id(self, email: str) -> str | None:
        try:
            resp = requests.get(
                self.users_url,
                params={"email": email},
                headers=self.headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("auth_directory_unreachable error=%s", exc)
            return None

        if not resp.ok:
            logger.warning("auth_directory_lookup_failed status_code=%s", resp.status_code)
            return None

        try:
            body = resp.json()
        except ValueError:
            logger.warning("auth_directory_invalid_body")
            return None

        return pick_user_id(body, email)


def _candidates(body: Any) -> list[dict[str, Any]]:
    if isinstance(body, list):
        return [u for u in body if isinstance(u, dict)]
    if isinstance(body, dict):
        users = body.get("users")
        if isinstance(users, list):
            return [u for u in users if isinstance(u, dict)]
        if "id" in body:
            return [body]
    return []


def pick_user_id(body: Any, email: str) -> str | None:
    """
    The admin endpoint may return a bare list, a `{"users": [...]}` page or a
    single user object. A user whose email matches wins; otherwise the first
    user is used only when it carries no email to contradict the lookup.
    """
    users = [u for u in _candidates(body) if u.get("id")]
    if not users:
        return None

    for user in users:
        if str(user.get("email") or "").strip().lower() == email:
            return str(user["id"])

    first = users[0]
    if not first.get("email"):
        return str(first["id"])
    return None


def link_identity(
    store: SubscriptionStore,
    directory: UserDirectory | None,
    subscription_id: Any,
    email: str,
) -> str | None:
    """
    Backfill `user_id` on a subscription row that has none yet.
    Returns the linked id, or None when lookup or write-back failed.
    """
    if directory is None:
        return None

    try:
        user_id = directory.find_user_id(email)
    except Exception:
        logger.exception("identity_lookup_failed email=%s", email)
        return None

    if not user_id:
        logger.info("identity_not_found email=%s", email)
        return None

    if not subscription_id:
        return user_id

    try:
        store.link_user_id(subscription_id, user_id)
    except Exception:
        logger.exception("identity_link_failed subscription_id=%s user_id=%s", subscription_id, user_id)
        return None

    logger.info("identity_linked subscription_id=%s user_id=%s", subscription_id, user_id)
    return user_id
