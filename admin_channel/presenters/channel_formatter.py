"""Channel-specific rendering of handler output.

Pure presentation: a ``Report`` (title, body lines, optional footer and
buttons) becomes the text and quick-reply keyboard for one channel. No
business logic and no side effects.

- Telegram: HTML parse mode, ``<b>`` bold, inline keyboard rows.
- WhatsApp: ``*bold*``, at most 3 reply buttons with titles of up to 20
  characters.
"""

from __future__ import annotations

import html
from typing import List, Optional

from pydantic import BaseModel, Field

from admin_channel.models.state import Channel, Keyboard, KeyboardButton


WHATSAPP_MAX_BUTTONS = 3
WHATSAPP_MAX_BUTTON_TITLE = 20

CONFIRM_BUTTON = KeyboardButton(text="✅ Confirmar", callback_data="/confirmar")
CANCEL_BUTTON = KeyboardButton(text="❌ Cancelar", callback_data="/cancelar")


class Report(BaseModel):
    """Channel-neutral content produced by a handler."""

    title: str
    body: List[str] = Field(default_factory=list)
    footer: Optional[str] = None
    buttons: Keyboard = Field(default_factory=list)


class FormattedMessage(BaseModel):
    text: str
    keyboard: Optional[Keyboard] = None


def bold(text: str, channel: Channel) -> str:
    if channel is Channel.TELEGRAM:
        return f"<b>{html.escape(text, quote=False)}</b>"
    return f"*{text}*"


def _plain(text: str, channel: Channel) -> str:
    if channel is Channel.TELEGRAM:
        return html.escape(text, quote=False)
    return text


def _truncate(title: str, limit: int) -> str:
    return title if len(title) <= limit else title[: limit - 1] + "…"


def format_keyboard(rows: Keyboard, channel: Channel) -> Optional[Keyboard]:
    """Adapt button rows to what the channel supports.

    Examples:
        >>> rows = [[KeyboardButton(text="Ventas de la semana completa", callback_data="/semana")]]
        >>> format_keyboard(rows, Channel.WHATSAPP)[0][0].text
        'Ventas de la semana…'
        >>> format_keyboard([], Channel.TELEGRAM) is None
        True
    """

    if not rows or not any(rows):
        return None

    if channel is Channel.TELEGRAM:
        return [list(row) for row in rows if row]

    flat = [button for row in rows for button in row][:WHATSAPP_MAX_BUTTONS]
    return [
        [
            KeyboardButton(
                text=_truncate(button.text, WHATSAPP_MAX_BUTTON_TITLE),
                callback_data=button.callback_data,
            )
            for button in flat
        ]
    ]


def format_report(report: Report, channel: Channel) -> FormattedMessage:
    """Render ``report`` for ``channel``.

    The title is bold; body lines and footer are escaped for Telegram HTML.
    A blank line separates the title, the body and the footer.
    """

    parts = [bold(report.title, channel)]
    if report.body:
        parts.append("")
        parts.extend(_plain(line, channel) for line in report.body)
    if report.footer:
        parts.append("")
        parts.append(_plain(report.footer, channel))

    return FormattedMessage(text="\n".join(parts), keyboard=format_keyboard(report.buttons, channel))


def confirmation_keyboard(channel: Channel) -> Keyboard:
    """Confirm/cancel affordance; presses arrive back as ``/confirmar``/``/cancelar``."""

    return format_keyboard([[CONFIRM_BUTTON, CANCEL_BUTTON]], channel) or []
