from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent.parent

DEFAULT_DIRECTORY_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True)
class Settings:
    supabase_url: str | None = None
    supabase_service_role_key: str | None = None
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    directory_timeout_seconds: float = DEFAULT_DIRECTORY_TIMEOUT_SECONDS

    @property
    def is_configured(self) -> bool:
        return bool(self.supabase_url) and bool(self.supabase_service_role_key)


def _parse_origins(raw: str | None) -> list[str]:
    configured = (raw or "").strip()
    if not configured:
        return ["*"]
    return [origin.strip() for origin in configured.split(",") if origin.strip()]


def load_settings() -> Settings:
    """
    Read process configuration once. Handlers receive the resulting object
    through `app.state.settings` and never look at the environment again.
    """
    load_dotenv(BASE_DIR / ".env")

    try:
        timeout = float(os.getenv("AUTH_DIRECTORY_TIMEOUT", DEFAULT_DIRECTORY_TIMEOUT_SECONDS))
    except ValueError:
        timeout = DEFAULT_DIRECTORY_TIMEOUT_SECONDS

    return Settings(
        supabase_url=(os.getenv("SUPABASE_URL") or "").strip() or None,
        supabase_service_role_key=(os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip() or None,
        cors_origins=_parse_origins(os.getenv("CORS_ORIGINS")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        directory_timeout_seconds=timeout,
    )
