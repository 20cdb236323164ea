"""Capability gate for admin intents."""

from __future__ import annotations

from admin_channel.models.intents import AdminIntent
from admin_channel.models.state import Capabilities


DENIAL_MESSAGE = (
    "⚠️ No tienes permisos para esta acción.\n\n"
    "Contacta al administrador de tu negocio si necesitas acceso."
)


def is_allowed(intent: AdminIntent, capabilities: Capabilities) -> bool:
    """Return True when ``capabilities`` permit acting on ``intent``.

    ``analytics_*`` needs ``can_view_analytics``, ``config_*`` needs
    ``can_configure``; every other intent is allowed.
    """

    name = intent.value
    if name.startswith("analytics_"):
        return bool(capabilities.can_view_analytics)
    if name.startswith("config_"):
        return bool(capabilities.can_configure)
    return True
