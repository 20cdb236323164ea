"""Collaborators handed to every handler, and the handler error boundary."""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from admin_channel.config.settings import AdminChannelSettings
from admin_channel.core.errors import AdminChannelError
from admin_channel.core.pending import Clock, utc_now
from admin_channel.models.state import SessionState, StateUpdate
from admin_channel.services.analytics import AnalyticsSource
from admin_channel.services.business_store import BusinessDataStore
from admin_channel.services.notifications import NotificationService


logger = logging.getLogger("admin_channel.handlers")

GENERIC_FAILURE_MESSAGE = "❌ Ocurrió un error procesando tu solicitud. Intenta de nuevo."


@dataclass
class HandlerContext:
    """Read-only external context for one turn."""

    store: BusinessDataStore
    analytics: Optional[AnalyticsSource] = None
    notifications: Optional[NotificationService] = None
    clock: Clock = utc_now
    settings: AdminChannelSettings = field(default_factory=AdminChannelSettings)


Handler = Callable[[SessionState, HandlerContext], Awaitable[StateUpdate]]


def handler_boundary(name: str, *, clear_pending: bool = False) -> Callable[[Handler], Handler]:
    """Convert anything a handler raises into a degraded, terminal update.

    With ``clear_pending`` the degraded update also clears the pending action.
    """

    extra = {"pending_action": None} if clear_pending else {}

    def decorator(fn: Handler) -> Handler:
        @functools.wraps(fn)
        async def wrapper(state: SessionState, ctx: HandlerContext) -> StateUpdate:
            try:
                return await fn(state, ctx)
            except AdminChannelError as exc:
                logger.warning("Handler %s failed: %s", name, exc.code)
                return StateUpdate(response=f"⚠️ {exc.user_message}", error=exc.code, should_end=True, **extra)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Unexpected error in handler %s", name)
                return StateUpdate(
                    response=GENERIC_FAILURE_MESSAGE,
                    error=f"internal_error: {exc!r}",
                    should_end=True,
                    **extra,
                )

        return wrapper

    return decorator
