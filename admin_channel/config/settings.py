"""Environment-driven settings for the admin channel service."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

from admin_channel.config.limits import (
    CLASSIFIER_TIMEOUT_SECONDS,
    DB_TIMEOUT_SECONDS,
    DEFAULT_MAX_ITERATIONS,
    PENDING_ACTION_TTL_SECONDS,
)


logger = logging.getLogger("admin_channel.settings")


class AdminChannelSettings(BaseModel):
    """Runtime configuration, one instance per process."""

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    classifier_model: str = "gpt-4o-mini"
    telegram_bot_token: Optional[str] = None

    max_iterations: int = DEFAULT_MAX_ITERATIONS
    pending_ttl_seconds: int = PENDING_ACTION_TTL_SECONDS
    db_timeout_seconds: float = DB_TIMEOUT_SECONDS
    classifier_timeout_seconds: float = CLASSIFIER_TIMEOUT_SECONDS


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        logger.warning("Invalid value for %s=%r; using default %r", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Non-positive value for %s=%r; using default %r", name, raw, default)
        return default
    return value


def load_settings() -> AdminChannelSettings:
    """Build settings from the process environment (and a local .env file)."""

    load_dotenv()

    return AdminChannelSettings(
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY"),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        classifier_model=os.getenv("ADMIN_CLASSIFIER_MODEL") or "gpt-4o-mini",
        telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN"),
        max_iterations=_env_number("ADMIN_MAX_ITERATIONS", DEFAULT_MAX_ITERATIONS, int),
        pending_ttl_seconds=_env_number("ADMIN_PENDING_TTL_SECONDS", PENDING_ACTION_TTL_SECONDS, int),
        db_timeout_seconds=_env_number("ADMIN_DB_TIMEOUT_SECONDS", DB_TIMEOUT_SECONDS, float),
        classifier_timeout_seconds=_env_number(
            "ADMIN_CLASSIFIER_TIMEOUT_SECONDS", CLASSIFIER_TIMEOUT_SECONDS, float
        ),
    )


@lru_cache(maxsize=1)
def get_settings() -> AdminChannelSettings:
    return load_settings()
