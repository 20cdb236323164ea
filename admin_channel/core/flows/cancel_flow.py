"""Cancel handler: discard the outstanding pending action.

Cancelling never fails towards the user: even a malformed pending action is
cleared and answered with the generic cancellation message.
"""

from __future__ import annotations

import logging
from typing import Dict, Tuple

from admin_channel.core.context import HandlerContext, handler_boundary
from admin_channel.models.state import EntityType, PendingActionType, SessionState, StateUpdate


logger = logging.getLogger("admin_channel.flows.cancel")

NOTHING_TO_CANCEL_MESSAGE = "ℹ️ No hay ninguna acción pendiente para cancelar."
GENERIC_CANCEL_MESSAGE = "❌ Acción cancelada."

CANCEL_MESSAGES: Dict[Tuple[PendingActionType, EntityType], str] = {
    (PendingActionType.CONFIRM_CREATE, EntityType.SERVICE): "❌ Se canceló la creación del servicio.",
    (PendingActionType.CONFIRM_UPDATE, EntityType.SERVICE): "❌ Se canceló la actualización del servicio.",
    (PendingActionType.CONFIRM_DELETE, EntityType.SERVICE): "❌ Se canceló la eliminación del servicio.",
    (PendingActionType.CONFIRM_UPDATE, EntityType.PRICE): "❌ Se canceló el cambio de precio.",
    (PendingActionType.CONFIRM_UPDATE, EntityType.HOURS): "❌ Se canceló el cambio de horario.",
    (PendingActionType.CONFIRM_CREATE, EntityType.STAFF): "❌ Se canceló el alta del empleado.",
    (PendingActionType.CONFIRM_DELETE, EntityType.STAFF): "❌ Se canceló la baja del empleado.",
    (PendingActionType.CONFIRM_CREATE, EntityType.PROMOTION): "❌ Se canceló la creación de la promoción.",
    (PendingActionType.CONFIRM_DELETE, EntityType.PROMOTION): "❌ Se canceló el fin de la promoción.",
    (PendingActionType.SELECT_OPTION, EntityType.SERVICE): "❌ Selección cancelada.",
}


@handler_boundary("cancel", clear_pending=True)
async def handle_cancel(state: SessionState, ctx: HandlerContext) -> StateUpdate:
    pending = state.pending_action
    if pending is None:
        return StateUpdate(response=NOTHING_TO_CANCEL_MESSAGE, pending_action=None, should_end=True)

    try:
        message = CANCEL_MESSAGES.get((pending.type, pending.entity_type), GENERIC_CANCEL_MESSAGE)
        logger.info(
            "Cancelled %s/%s tenant=%s",
            pending.type.value,
            pending.entity_type.value,
            state.caller.tenant_id,
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning("Cancelling malformed pending action: %r", exc)
        message = GENERIC_CANCEL_MESSAGE

    return StateUpdate(response=message, pending_action=None, should_end=True)
