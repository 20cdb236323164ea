"""Deterministic fast-path intent matcher for the admin channel.

This module resolves platform commands, greetings and single-word
confirmations/cancellations without calling the classifier. It is pure:
no I/O, no state, no side effects.

Anything it does not recognize returns ``None`` and falls through to the
fallback classifier.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from admin_channel.models.intents import AdminIntent


class IntentMatch(BaseModel):
    """A resolved intent with its confidence and extracted entities."""

    intent: AdminIntent
    confidence: float = Field(ge=0.0, le=1.0)
    entities: Dict[str, Any] = Field(default_factory=dict)
    reasoning: Optional[str] = None


COMMANDS: Dict[str, AdminIntent] = {
    "/start": AdminIntent.GREETING,
    "/inicio": AdminIntent.GREETING,
    "/ayuda": AdminIntent.HELP,
    "/help": AdminIntent.HELP,
    "/resumen": AdminIntent.ANALYTICS_DAILY_SUMMARY,
    "/semana": AdminIntent.ANALYTICS_WEEKLY_SUMMARY,
    "/mes": AdminIntent.ANALYTICS_MONTHLY_SUMMARY,
    "/ventas": AdminIntent.ANALYTICS_SALES,
    "/leads": AdminIntent.ANALYTICS_LEADS,
    "/pedidos": AdminIntent.ANALYTICS_ORDERS,
    "/citas": AdminIntent.ANALYTICS_APPOINTMENTS,
    "/inventario": AdminIntent.ANALYTICS_INVENTORY,
    "/config": AdminIntent.CONFIG_SERVICES,
    "/servicios": AdminIntent.CONFIG_SERVICES,
    "/precios": AdminIntent.CONFIG_PRICES,
    "/horarios": AdminIntent.CONFIG_HOURS,
    "/personal": AdminIntent.CONFIG_STAFF,
    "/promociones": AdminIntent.CONFIG_PROMOTIONS,
    "/alertas": AdminIntent.NOTIFICATION_SETTINGS,
    "/pausar": AdminIntent.NOTIFICATION_PAUSE,
    "/reanudar": AdminIntent.NOTIFICATION_RESUME,
    "/confirmar": AdminIntent.CONFIRM,
    "/cancelar": AdminIntent.CANCEL,
}

GREETING_TOKENS = (
    "buenos días",
    "buenos dias",
    "buenas tardes",
    "buenas noches",
    "buenas",
    "hola",
    "hello",
    "hey",
    "hi",
)

CONFIRM_WORDS = frozenset({"sí", "si", "ok", "dale", "confirmar", "adelante"})

CANCEL_WORDS = frozenset({"no", "cancelar", "olvídalo", "olvidalo", "mejor no"})

_EDGE_PUNCTUATION = "¡!¿?.,;: "
_WHITESPACE_RE = re.compile(r"\s+")


def _normalize(text: str) -> str:
    t = _WHITESPACE_RE.sub(" ", (text or "").strip().lower())
    return t.strip(_EDGE_PUNCTUATION)


def _match_command(normalized: str) -> Optional[IntentMatch]:
    if not normalized.startswith("/"):
        return None

    head, _, rest = normalized.partition(" ")
    # Telegram group chats append the bot name: /ayuda@MiNegocioBot
    command = head.split("@", 1)[0]
    intent = COMMANDS.get(command)
    if intent is None:
        return None

    entities: Dict[str, Any] = {"command": command}
    if rest.strip():
        entities["args"] = rest.strip()
    return IntentMatch(intent=intent, confidence=1.0, entities=entities)


def _match_greeting(normalized: str) -> Optional[IntentMatch]:
    for token in GREETING_TOKENS:
        # Bounded by the token plus a space: "hola equipo" matches,
        # "holanda" and "hilo" do not.
        if normalized == token or normalized.startswith(token + " "):
            return IntentMatch(intent=AdminIntent.GREETING, confidence=1.0)
    return None


def match_fast_intent(text: str) -> Optional[IntentMatch]:
    """Resolve ``text`` without the classifier, or return ``None``.

    Matching is case-insensitive and ignores surrounding whitespace and
    punctuation. Every match carries confidence 1.0.

    Examples:
        >>> match_fast_intent("/ayuda").intent
        <AdminIntent.HELP: 'help'>
        >>> match_fast_intent("Sí").intent
        <AdminIntent.CONFIRM: 'confirm'>
        >>> match_fast_intent("cuánto vendimos hoy") is None
        True
    """

    normalized = _normalize(text)
    if not normalized:
        return None

    command = _match_command(normalized)
    if command is not None:
        return command

    if normalized in CONFIRM_WORDS:
        return IntentMatch(intent=AdminIntent.CONFIRM, confidence=1.0)

    if normalized in CANCEL_WORDS:
        return IntentMatch(intent=AdminIntent.CANCEL, confidence=1.0)

    return _match_greeting(normalized)
