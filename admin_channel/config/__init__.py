"""Configuration package for the admin channel."""

from admin_channel.config.limits import (
    CLASSIFIER_HISTORY_TURNS,
    DEFAULT_MAX_ITERATIONS,
    MAX_EXECUTED_ACTIONS,
    MAX_HISTORY_ENTRIES,
    PENDING_ACTION_TTL_SECONDS,
)
from admin_channel.config.settings import AdminChannelSettings, get_settings, load_settings

__all__ = [
    "AdminChannelSettings",
    "CLASSIFIER_HISTORY_TURNS",
    "DEFAULT_MAX_ITERATIONS",
    "MAX_EXECUTED_ACTIONS",
    "MAX_HISTORY_ENTRIES",
    "PENDING_ACTION_TTL_SECONDS",
    "get_settings",
    "load_settings",
]
