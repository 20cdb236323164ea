"""Helpers for reading loosely-typed payloads (Telegram updates, DB rows)."""

from typing import Any, Dict, List, Optional


def safe_get(d: Dict[str, Any], path: List[Any], default: Optional[Any] = None) -> Any:
    """Safely traverse a nested dict using a list path.

    Returns ``default`` if any step in the path is missing or not a mapping.
    """

    current: Any = d
    for key in path:
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return current


def detect_type(message_dict: Dict[str, Any]) -> str:
    """Detect the high-level type of a Telegram message payload.

    Returns one of: "command", "text", "voice", "media" or "unknown".
    """

    if not isinstance(message_dict, dict):
        return "unknown"

    text = message_dict.get("text") or ""

    if text.startswith("/"):
        return "command"

    if "text" in message_dict:
        return "text"

    if "voice" in message_dict or "audio" in message_dict:
        return "voice"

    if any(key in message_dict for key in ("photo", "video", "document")):
        return "media"

    return "unknown"


def format_money(value: Any) -> str:
    """Render an amount as ``$1,234`` (two decimals only when needed)."""

    try:
        amount = float(value)
    except (TypeError, ValueError):
        return "$0"
    if amount.is_integer():
        return f"${int(amount):,}"
    return f"${amount:,.2f}"
