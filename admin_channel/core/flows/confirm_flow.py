"""Confirm handler: apply the outstanding pending action, if still valid.

Every path through this handler leaves ``pending_action`` cleared. A
confirmation that reaches an executor records exactly one executed action,
successful or not; a failed execution is never left around for retry.
"""

from __future__ import annotations

import logging
from typing import Dict, Tuple

from admin_channel.core.context import GENERIC_FAILURE_MESSAGE, HandlerContext, handler_boundary
from admin_channel.core.errors import (
    AdminChannelError,
    InvalidExpiry,
    NoPendingAction,
    PendingActionExpired,
)
from admin_channel.core.executors import execute_pending_action
from admin_channel.core.pending import ensure_confirmable
from admin_channel.models.records import OperationResult
from admin_channel.models.state import (
    EntityType,
    ExecutedAction,
    PendingAction,
    PendingActionType,
    SessionState,
    StateUpdate,
)
from admin_channel.presenters.channel_formatter import Report, format_report
from admin_channel.utils.format import format_money
from admin_channel.utils.logger import log_info, log_warn


logger = logging.getLogger("admin_channel.flows.confirm")

NOTHING_TO_CONFIRM_MESSAGE = "ℹ️ No hay ninguna acción pendiente de confirmar."
EXPIRED_MESSAGE = "⏰ La acción pendiente expiró. Vuelve a solicitarla si aún la necesitas."
INVALID_EXPIRY_MESSAGE = "⚠️ La acción pendiente tenía una configuración inválida y se descartó. Vuelve a solicitarla."

SUCCESS_TITLES: Dict[Tuple[PendingActionType, EntityType], str] = {
    (PendingActionType.CONFIRM_CREATE, EntityType.SERVICE): "✅ Servicio creado",
    (PendingActionType.CONFIRM_UPDATE, EntityType.SERVICE): "✅ Servicio actualizado",
    (PendingActionType.CONFIRM_DELETE, EntityType.SERVICE): "✅ Servicio desactivado",
    (PendingActionType.CONFIRM_UPDATE, EntityType.PRICE): "✅ Precio actualizado",
    (PendingActionType.CONFIRM_UPDATE, EntityType.HOURS): "✅ Horario actualizado",
    (PendingActionType.CONFIRM_CREATE, EntityType.STAFF): "✅ Empleado agregado",
    (PendingActionType.CONFIRM_UPDATE, EntityType.STAFF): "✅ Empleado actualizado",
    (PendingActionType.CONFIRM_DELETE, EntityType.STAFF): "✅ Empleado dado de baja",
    (PendingActionType.CONFIRM_CREATE, EntityType.PROMOTION): "✅ Promoción creada",
    (PendingActionType.CONFIRM_UPDATE, EntityType.PROMOTION): "✅ Promoción actualizada",
    (PendingActionType.CONFIRM_DELETE, EntityType.PROMOTION): "✅ Promoción terminada",
}


def _success_body(pending: PendingAction, result: OperationResult) -> list:
    data = pending.data
    entity = pending.entity_type
    if entity is EntityType.PRICE:
        lines = [f"• Servicio: {result.data.get('service_name') or data.get('service_name')}"]
        previous = result.data.get("previous_price")
        if previous is not None:
            lines.append(f"• Anterior: {format_money(previous)}")
        lines.append(f"• Nuevo: {format_money(data.get('price'))}")
        return lines
    if entity is EntityType.HOURS:
        day = str(data.get("day", "")).capitalize()
        if data.get("is_closed"):
            return [f"• {day}: Cerrado"]
        return [f"• {day}: {data.get('open_time')} - {data.get('close_time')}"]
    if entity is EntityType.SERVICE and pending.type is not PendingActionType.CONFIRM_DELETE:
        return [f"• Nombre: {data.get('name')}", f"• Precio: {format_money(data.get('price'))}"]
    if entity is EntityType.STAFF:
        return [f"• {data.get('first_name', '')} {data.get('last_name', '')}".rstrip()]
    name = data.get("name")
    return [f"• {name}"] if name else []


@handler_boundary("confirm", clear_pending=True)
async def handle_confirm(state: SessionState, ctx: HandlerContext) -> StateUpdate:
    tenant_id = state.caller.tenant_id
    now = ctx.clock()

    try:
        pending = ensure_confirmable(state.pending_action, now)
    except NoPendingAction:
        return StateUpdate(response=NOTHING_TO_CONFIRM_MESSAGE, pending_action=None, should_end=True)
    except InvalidExpiry as exc:
        log_warn("Discarding pending action with invalid expiry", tenant_id=tenant_id, error=str(exc))
        return StateUpdate(
            response=INVALID_EXPIRY_MESSAGE,
            pending_action=None,
            error=exc.code,
            should_end=True,
        )
    except PendingActionExpired as exc:
        log_info("Pending action expired before confirmation", tenant_id=tenant_id, detail=str(exc))
        return StateUpdate(response=EXPIRED_MESSAGE, pending_action=None, should_end=True)

    action_kwargs = {
        "type": pending.type.value,
        "entity_type": pending.entity_type.value,
        "executed_at": now,
    }

    try:
        result = await execute_pending_action(pending, state.caller, ctx)
    except AdminChannelError as exc:
        log_warn(
            "Confirmed action failed",
            tenant_id=tenant_id,
            action=pending.type.value,
            entity_type=pending.entity_type.value,
            error=exc.code,
        )
        failed = ExecutedAction(success=False, entity_id=pending.entity_id, error=str(exc), **action_kwargs)
        return StateUpdate(
            response=f"❌ No se pudo completar la acción: {exc.user_message}",
            pending_action=None,
            executed_actions=[failed],
            error=exc.code,
            should_end=True,
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected error executing %s/%s", pending.type.value, pending.entity_type.value)
        failed = ExecutedAction(success=False, entity_id=pending.entity_id, error=repr(exc), **action_kwargs)
        return StateUpdate(
            response=GENERIC_FAILURE_MESSAGE,
            pending_action=None,
            executed_actions=[failed],
            error=f"internal_error: {exc!r}",
            should_end=True,
        )

    log_info(
        "Confirmed action executed",
        tenant_id=tenant_id,
        action=pending.type.value,
        entity_type=pending.entity_type.value,
        entity_id=result.entity_id,
    )
    done = ExecutedAction(
        success=True,
        entity_id=result.entity_id or pending.entity_id,
        result_data=result.data,
        **action_kwargs,
    )
    title = SUCCESS_TITLES.get((pending.type, pending.entity_type), "✅ Acción completada")
    message = format_report(Report(title=title, body=_success_body(pending, result)), state.caller.channel)
    return StateUpdate(
        response=message.text,
        keyboard=message.keyboard,
        pending_action=None,
        executed_actions=[done],
        should_end=True,
    )
