# app/services/supabase_client.py

import logging

from supabase import Client, create_client
from supabase.client import ClientOptions

from app.core.config import Settings
from app.core.errors import UnconfiguredEnvironment

logger = logging.getLogger(__name__)

# One client per (url, key); created lazily on first request.
_clients: dict[tuple[str, str], Client] = {}


def require_configured(settings: Settings) -> None:
    if settings.is_configured:
        return
    logger.error(
        "supabase_config_missing has_url=%s has_service_key=%s",
        bool(settings.supabase_url),
        bool(settings.supabase_service_role_key),
    )
    raise UnconfiguredEnvironment()


def get_supabase(settings: Settings) -> Client:
    """
    Service-role client for server-side writes.
    Sessions are neither persisted nor refreshed: every request is stateless.
    """
    require_configured(settings)

    cache_key = (settings.supabase_url, settings.supabase_service_role_key)
    client = _clients.get(cache_key)
    if client is not None:
        return client

    client = create_client(
        settings.supabase_url,
        settings.supabase_service_role_key,
        options=ClientOptions(
            persist_session=False,
            auto_refresh_token=False,
        ),
    )
    _clients[cache_key] = client
    return client
