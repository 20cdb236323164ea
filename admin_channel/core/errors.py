"""Error taxonomy for the admin channel.

Every handler and orchestrator step converts failures into one of these
kinds before returning; none of them escapes a turn.
"""

from __future__ import annotations

from typing import Optional


class AdminChannelError(Exception):
    """Base class. ``kind`` is stable and lands in ``SessionState.error``."""

    kind = "admin_channel_error"
    user_message = "Ocurrió un error. Intenta de nuevo."

    def __init__(self, message: str = "", *, user_message: Optional[str] = None) -> None:
        super().__init__(message or self.kind)
        if user_message is not None:
            self.user_message = user_message

    @property
    def code(self) -> str:
        return f"{self.kind}: {self}"


class ValidationError(AdminChannelError):
    """Missing or malformed input. User-correctable, no state mutation."""

    kind = "validation_error"
    user_message = "Faltan datos o no son válidos."


class PermissionDenied(AdminChannelError):
    kind = "permission_denied"
    user_message = "No tienes permisos para esta acción."


class ClassificationError(AdminChannelError):
    """The fallback classifier failed or returned unusable output."""

    kind = "classification_error"
    user_message = "No entendí tu mensaje."


class NoPendingAction(AdminChannelError):
    kind = "no_pending_action"
    user_message = "No hay ninguna acción pendiente."


class InvalidExpiry(AdminChannelError):
    kind = "invalid_expiry"
    user_message = "La acción pendiente tiene una configuración inválida."


class PendingActionExpired(AdminChannelError):
    kind = "pending_action_expired"
    user_message = "La acción pendiente expiró."


class ExternalOperationError(AdminChannelError):
    """The business data store (or another collaborator) reported failure."""

    kind = "external_operation_error"
    user_message = "No pude completar la operación. Intenta de nuevo."

    def __init__(
        self,
        message: str = "",
        *,
        user_message: Optional[str] = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message, user_message=user_message)
        self.timed_out = timed_out


class LoopGuardTripped(AdminChannelError):
    """Iteration ceiling reached. Internal only, never shown to the user."""

    kind = "loop_guard_tripped"
