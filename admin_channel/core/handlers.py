"""Handler registry: one coroutine per ``HandlerName``."""

from __future__ import annotations

from typing import Dict

from admin_channel.core.context import Handler
from admin_channel.core.flows.analytics_flow import handle_analytics
from admin_channel.core.flows.cancel_flow import handle_cancel
from admin_channel.core.flows.config_flow import handle_config
from admin_channel.core.flows.confirm_flow import handle_confirm
from admin_channel.core.flows.meta_flow import handle_greeting, handle_help
from admin_channel.core.flows.notifications_flow import handle_notifications
from admin_channel.core.flows.operations_flow import handle_operations
from admin_channel.core.router import HandlerName


HANDLERS: Dict[HandlerName, Handler] = {
    HandlerName.ANALYTICS: handle_analytics,
    HandlerName.CONFIG: handle_config,
    HandlerName.OPERATIONS: handle_operations,
    HandlerName.NOTIFICATIONS: handle_notifications,
    HandlerName.CONFIRM: handle_confirm,
    HandlerName.CANCEL: handle_cancel,
    HandlerName.GREETING: handle_greeting,
    HandlerName.HELP: handle_help,
}

missing = set(HandlerName) - set(HANDLERS)
if missing:
    raise RuntimeError(f"No handler registered for {sorted(m.value for m in missing)}")
del missing
