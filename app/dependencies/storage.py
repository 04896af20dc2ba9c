from __future__ import annotations

from fastapi import Depends, Request

from app.core.config import Settings
from app.services.identity import UserDirectory
from app.services.subscription_store import SubscriptionStore
from app.services.supabase_client import get_supabase, require_configured


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_subscription_store(settings: Settings = Depends(get_settings)) -> SubscriptionStore:
    return SubscriptionStore(get_supabase(settings))


def get_user_directory(settings: Settings = Depends(get_settings)) -> UserDirectory:
    require_configured(settings)
    return UserDirectory(
        settings.supabase_url,
        settings.supabase_service_role_key,
        timeout=settings.directory_timeout_seconds,
    )
