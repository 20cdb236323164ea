"""Intent -> handler routing table."""

from __future__ import annotations

from enum import Enum
from typing import Dict

from admin_channel.models.intents import AdminIntent


class HandlerName(str, Enum):
    ANALYTICS = "analytics"
    CONFIG = "config"
    OPERATIONS = "operations"
    NOTIFICATIONS = "notifications"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    GREETING = "greeting"
    HELP = "help"


DEFAULT_HANDLER = HandlerName.HELP

_FAMILY_HANDLERS: Dict[str, HandlerName] = {
    "analytics": HandlerName.ANALYTICS,
    "config": HandlerName.CONFIG,
    "operation": HandlerName.OPERATIONS,
    "notification": HandlerName.NOTIFICATIONS,
}

_META_HANDLERS: Dict[AdminIntent, HandlerName] = {
    AdminIntent.HELP: HandlerName.HELP,
    AdminIntent.GREETING: HandlerName.GREETING,
    AdminIntent.CONFIRM: HandlerName.CONFIRM,
    AdminIntent.CANCEL: HandlerName.CANCEL,
    AdminIntent.UNKNOWN: HandlerName.HELP,
}


def _build_table() -> Dict[AdminIntent, HandlerName]:
    table: Dict[AdminIntent, HandlerName] = {}
    for intent in AdminIntent:
        if intent in _META_HANDLERS:
            table[intent] = _META_HANDLERS[intent]
        elif intent.family in _FAMILY_HANDLERS:
            table[intent] = _FAMILY_HANDLERS[intent.family]
        else:
            raise RuntimeError(f"Intent {intent.value!r} has no handler route")
    return table


# Built at import: a new AdminIntent member without a route fails here.
INTENT_HANDLERS: Dict[AdminIntent, HandlerName] = _build_table()


def route(intent: AdminIntent) -> HandlerName:
    """Return the handler for ``intent``; help for anything not in the table."""

    return INTENT_HANDLERS.get(intent, DEFAULT_HANDLER)
