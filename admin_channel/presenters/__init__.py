"""Presenters package for the admin channel."""

from admin_channel.presenters.channel_formatter import (
    FormattedMessage,
    Report,
    confirmation_keyboard,
    format_report,
)

__all__ = [
    "FormattedMessage",
    "Report",
    "confirmation_keyboard",
    "format_report",
]
