from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, HttpUrl, ValidationError, model_validator


class Settings(BaseModel):
    bot_token: str
    storage_backend: Literal["memory", "supabase"] = "memory"
    supabase_url: HttpUrl | None = None
    supabase_service_key: str | None = None
    environment: Literal["local", "staging", "production"] = "local"

    # Web push (VAPID)
    vapid_public_key: str | None = None
    vapid_private_key: str | None = None
    vapid_claims_email: str = "mailto:admin@example.com"
    push_url: str = "/schedule"

    default_location: str = "Main Gym"
    reminder_hour: int = 8
    reminder_timezone: str = "America/New_York"
    transaction_max_attempts: int = 10
    transaction_timeout: float = 30.0

    @model_validator(mode="after")
    def _check_backend(self) -> "Settings":
        if self.storage_backend == "supabase" and (
            self.supabase_url is None or not self.supabase_service_key
        ):
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY are required for the supabase backend"
            )
        if not 0 <= self.reminder_hour <= 23:
            raise ValueError("REMINDER_HOUR must be between 0 and 23")
        if self.transaction_max_attempts < 1:
            raise ValueError("TRANSACTION_MAX_ATTEMPTS must be positive")
        if self.transaction_timeout <= 0:
            raise ValueError("TRANSACTION_TIMEOUT must be positive")
        return self

    @property
    def is_debug(self) -> bool:
        return self.environment == "local"

    @property
    def push_configured(self) -> bool:
        return bool(self.vapid_public_key and (self.vapid_private_key or "").strip())


def _build_settings() -> Settings:
    # Load .env file once on first settings build (for local development)
    load_dotenv()

    try:
        return Settings(
            bot_token=os.environ["BOT_TOKEN"],
            storage_backend=os.getenv("STORAGE_BACKEND", "memory"),
            supabase_url=os.getenv("SUPABASE_URL") or None,
            supabase_service_key=os.getenv("SUPABASE_SERVICE_KEY"),
            environment=os.getenv("ENVIRONMENT", "local"),
            vapid_public_key=os.getenv("VAPID_PUBLIC_KEY"),
            vapid_private_key=os.getenv("VAPID_PRIVATE_KEY"),
            vapid_claims_email=os.getenv("VAPID_CLAIMS_EMAIL", "mailto:admin@example.com"),
            push_url=os.getenv("PUSH_URL", "/schedule"),
            default_location=os.getenv("DEFAULT_LOCATION", "Main Gym"),
            reminder_hour=int(os.getenv("REMINDER_HOUR", "8")),
            reminder_timezone=os.getenv("REMINDER_TIMEZONE", "America/New_York"),
            transaction_max_attempts=int(os.getenv("TRANSACTION_MAX_ATTEMPTS", "10")),
            transaction_timeout=float(os.getenv("TRANSACTION_TIMEOUT", "30")),
        )
    except KeyError as exc:
        raise RuntimeError("Missing required environment variables: BOT_TOKEN") from exc
    except (ValidationError, ValueError) as exc:
        raise RuntimeError(f"Invalid settings: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Cached accessor for application settings.

    Reads environment variables once and validates them with Pydantic.
    """

    return _build_settings()
