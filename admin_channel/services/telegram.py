"""Telegram integration for the admin channel.

Receives webhook updates, turns them into admin turns and sends the reply
(with its inline keyboard) back through the Bot API.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from admin_channel.config.limits import TELEGRAM_TIMEOUT_SECONDS
from admin_channel.config.settings import get_settings
from admin_channel.core.agent import AdminChannelRuntime, get_runtime, process_admin_message
from admin_channel.models.state import Channel, Keyboard
from admin_channel.utils.format import detect_type, safe_get
from admin_channel.utils.logger import log_error, log_info, log_warn
from admin_channel.utils.ratelimiter import check_rate_limit


NOT_LINKED_MESSAGE = (
    "🔒 Tu cuenta de Telegram no está vinculada a ningún negocio.\n\n"
    "Pide al administrador que te registre desde el dashboard."
)
RATE_LIMITED_MESSAGE = "⏳ Estás enviando mensajes muy rápido. Espera un momento e intenta de nuevo."
INTERNAL_ERROR_MESSAGE = "❌ Tuve un error interno procesando tu mensaje. Intenta de nuevo."

_PROCESS_START_UTC = datetime.now(timezone.utc)
_LAST_SEEN_UPDATE_ID: Optional[int] = None


def reset_update_tracking() -> None:
    global _LAST_SEEN_UPDATE_ID  # noqa: PLW0603
    _LAST_SEEN_UPDATE_ID = None


def normalize_update(update: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize a message or callback_query update.

    A button press arrives as a callback_query; its ``data`` becomes the
    message text, so it re-enters the engine like a typed command.
    """

    callback = update.get("callback_query")
    message = safe_get(update, ["message"]) or safe_get(update, ["callback_query", "message"]) or {}

    if callback:
        user = callback.get("from") or {}
        text = callback.get("data") or ""
        msg_type = "callback_query"
    else:
        user = message.get("from") or {}
        text = message.get("text") or message.get("caption") or ""
        msg_type = detect_type(message)

    unix_ts = message.get("date") or 0
    return {
        "user_id": user.get("id"),
        "username": user.get("username"),
        "chat_id": safe_get(message, ["chat", "id"]),
        "message_id": message.get("message_id"),
        "callback_query_id": callback.get("id") if callback else None,
        "text": text.strip(),
        "type": msg_type,
        "timestamp": datetime.fromtimestamp(int(unix_ts), tz=timezone.utc),
    }


def _should_drop(update: Dict[str, Any], request_id: Optional[str]) -> bool:
    """Duplicate, out-of-order or pre-start updates are dropped."""

    global _LAST_SEEN_UPDATE_ID  # noqa: PLW0603

    update_id = update.get("update_id")
    if isinstance(update_id, int) and _LAST_SEEN_UPDATE_ID is not None and update_id <= _LAST_SEEN_UPDATE_ID:
        log_info(
            "Dropping duplicate/out-of-order Telegram update",
            request_id=request_id,
            update_id=update_id,
            last_seen=_LAST_SEEN_UPDATE_ID,
        )
        return True

    if isinstance(update_id, int):
        _LAST_SEEN_UPDATE_ID = update_id

    container = update.get("message") or (update.get("callback_query") or {}).get("message")
    msg_date = (container or {}).get("date")
    # Callback queries carry the date of the original bot message; only plain
    # messages are checked against process start.
    if "message" in update and isinstance(msg_date, int):
        msg_ts = datetime.fromtimestamp(msg_date, tz=timezone.utc)
        if msg_ts < _PROCESS_START_UTC:
            log_info(
                "Dropping stale Telegram update from before process start",
                request_id=request_id,
                update_id=update_id,
                message_ts=msg_ts.isoformat(),
            )
            return True
    return False


def to_inline_keyboard(keyboard: Optional[Keyboard]) -> Optional[Dict[str, Any]]:
    if not keyboard:
        return None
    rows: List[List[Dict[str, str]]] = [
        [{"text": button.text, "callback_data": button.callback_data} for button in row]
        for row in keyboard
        if row
    ]
    return {"inline_keyboard": rows} if rows else None


def _api_url(method: str) -> Optional[str]:
    token = get_settings().telegram_bot_token
    if not token:
        log_error(f"TELEGRAM_BOT_TOKEN is not set; cannot call {method}")
        return None
    return f"https://api.telegram.org/bot{token}/{method}"


async def send_message(chat_id: str, text: str, keyboard: Optional[Keyboard] = None) -> None:
    """Send an HTML-formatted message, with an inline keyboard when given."""

    url = _api_url("sendMessage")
    if url is None:
        return

    payload: Dict[str, Any] = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}
    markup = to_inline_keyboard(keyboard)
    if markup:
        payload["reply_markup"] = markup

    try:
        async with httpx.AsyncClient(timeout=TELEGRAM_TIMEOUT_SECONDS) as client:
            resp = await client.post(url, json=payload)
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        log_error(f"HTTP error while sending Telegram message: {exc!r}")


async def answer_callback_query(callback_query_id: str) -> None:
    """Stop the client-side spinner on the pressed button."""

    url = _api_url("answerCallbackQuery")
    if url is None:
        return

    try:
        async with httpx.AsyncClient(timeout=TELEGRAM_TIMEOUT_SECONDS) as client:
            resp = await client.post(url, json={"callback_query_id": callback_query_id})
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        log_warn(f"Could not answer callback query: {exc!r}")


async def handle_telegram_update(
    update: Dict[str, Any],
    request_id: Optional[str] = None,
    runtime: Optional[AdminChannelRuntime] = None,
) -> None:
    """Handle a raw Telegram update; invoked from the FastAPI webhook route."""

    if not isinstance(update, dict):
        log_warn("Received Telegram update that is not a dict", request_id=request_id)
        return

    if "message" not in update and "callback_query" not in update:
        log_warn("Received Telegram update without message or callback_query", request_id=request_id)
        return

    if _should_drop(update, request_id):
        return

    normalized = normalize_update(update)
    user_id = normalized["user_id"]
    chat_id = normalized["chat_id"]

    if normalized["callback_query_id"]:
        await answer_callback_query(str(normalized["callback_query_id"]))

    if user_id is None or chat_id is None:
        log_warn("Telegram update without user or chat id", request_id=request_id)
        return

    if not normalized["text"]:
        log_info("Ignoring Telegram update without text", request_id=request_id, type=normalized["type"])
        return

    if not await check_rate_limit(f"telegram:{user_id}"):
        log_warn("Telegram user is rate-limited", request_id=request_id, telegram_user_id=str(user_id))
        await send_message(str(chat_id), RATE_LIMITED_MESSAGE)
        return

    runtime = runtime or get_runtime()

    try:
        caller = await runtime.conversations.get_user_by_channel(Channel.TELEGRAM, str(user_id))
    except Exception as exc:  # noqa: BLE001
        log_error(
            "Error while resolving Telegram operator",
            request_id=request_id,
            telegram_user_id=str(user_id),
            error=repr(exc),
        )
        await send_message(str(chat_id), INTERNAL_ERROR_MESSAGE)
        return

    if caller is None:
        log_info("Unlinked Telegram user", request_id=request_id, telegram_user_id=str(user_id))
        await send_message(str(chat_id), NOT_LINKED_MESSAGE)
        return

    log_info(
        "Incoming admin message",
        tenant_id=caller.tenant_id,
        request_id=request_id,
        message_id=normalized["message_id"],
        type=normalized["type"],
    )

    try:
        result = await process_admin_message(
            runtime,
            caller,
            normalized["text"],
            message_id=str(normalized["message_id"]) if normalized["message_id"] is not None else None,
            request_id=request_id,
        )
    except Exception as exc:  # noqa: BLE001
        log_error(
            "Error while processing admin message",
            tenant_id=caller.tenant_id,
            request_id=request_id,
            error=repr(exc),
        )
        await send_message(str(chat_id), INTERNAL_ERROR_MESSAGE)
        return

    if not result.text:
        log_warn("Admin turn produced no reply", tenant_id=caller.tenant_id, request_id=request_id)
        return

    await send_message(str(chat_id), result.text, result.keyboard)
