"""Notifications handler: pause, resume, overview and test delivery."""

from __future__ import annotations

import logging

from admin_channel.core.context import HandlerContext, handler_boundary
from admin_channel.core.errors import ExternalOperationError, ValidationError
from admin_channel.models.intents import AdminIntent
from admin_channel.models.state import KeyboardButton, SessionState, StateUpdate
from admin_channel.presenters.channel_formatter import Report, format_report
from admin_channel.services.notifications import NotificationService, broadcast
from admin_channel.utils.logger import log_info
from admin_channel.utils.timeouts import with_timeout


logger = logging.getLogger("admin_channel.flows.notifications")

NOT_SUBSCRIBED_MESSAGE = (
    "ℹ️ Tu usuario no tiene habilitada la recepción de notificaciones.\n"
    "Pide al administrador que la active desde el dashboard."
)
TEST_TITLE = "🔔 Notificación de prueba"
TEST_CONTENT = "Esta es una notificación de prueba del canal administrativo."


def _service(ctx: HandlerContext) -> NotificationService:
    if ctx.notifications is None:
        raise ExternalOperationError("notification service not configured")
    return ctx.notifications


def _answer(state: SessionState, report: Report) -> StateUpdate:
    message = format_report(report, state.caller.channel)
    return StateUpdate(response=message.text, keyboard=message.keyboard, should_end=True)


async def _set_paused(state: SessionState, ctx: HandlerContext, paused: bool) -> StateUpdate:
    caller = state.caller
    if not caller.user_id:
        raise ValidationError("caller has no user id", user_message="No pude identificar tu usuario.")

    result = await with_timeout(
        _service(ctx).set_paused(caller.tenant_id, caller.user_id, paused),
        ctx.settings.db_timeout_seconds,
        "Update notification preference",
    )
    if not result.success:
        raise ExternalOperationError(f"set_paused failed: {result.error}", user_message=result.error)

    log_info("Notification preference updated", tenant_id=caller.tenant_id, paused=paused)
    if paused:
        return _answer(
            state,
            Report(
                title="⏸️ Alertas pausadas",
                body=["No recibirás notificaciones hasta que las reanudes."],
                buttons=[[KeyboardButton(text="▶️ Reanudar", callback_data="/reanudar")]],
            ),
        )
    return _answer(state, Report(title="▶️ Alertas reanudadas", body=["Volverás a recibir notificaciones."]))


def _overview(state: SessionState) -> StateUpdate:
    caller = state.caller
    if not caller.capabilities.can_receive_notifications:
        status = "🚫 Deshabilitadas para tu usuario"
    elif caller.notifications_paused:
        status = "⏸️ Pausadas"
    else:
        status = "✅ Activas"
    return _answer(
        state,
        Report(
            title="🔔 Notificaciones",
            body=[f"Estado: {status}", "", "Recibirás resúmenes, leads calientes, inventario bajo y escalaciones."],
            buttons=[
                [
                    KeyboardButton(text="⏸️ Pausar", callback_data="/pausar"),
                    KeyboardButton(text="▶️ Reanudar", callback_data="/reanudar"),
                ]
            ],
        ),
    )


async def _send_test(state: SessionState, ctx: HandlerContext) -> StateUpdate:
    caller = state.caller
    if not caller.capabilities.can_receive_notifications:
        return StateUpdate(response=NOT_SUBSCRIBED_MESSAGE, should_end=True)

    result = await broadcast(_service(ctx), caller.tenant_id, TEST_TITLE, TEST_CONTENT)
    body = [f"Enviadas: {result.succeeded}/{result.total}"]
    if result.failed:
        body.append(f"⚠️ Fallidas: {result.failed}")
    message = format_report(Report(title="🔔 Prueba enviada", body=body), caller.channel)
    if result.failed:
        return StateUpdate(
            response=message.text,
            keyboard=message.keyboard,
            error=f"notification_fan_out: {result.failed} failed",
            should_end=True,
        )
    return StateUpdate(response=message.text, keyboard=message.keyboard, should_end=True)


@handler_boundary("notifications")
async def handle_notifications(state: SessionState, ctx: HandlerContext) -> StateUpdate:
    intent = state.resolved_intent
    if intent is AdminIntent.NOTIFICATION_PAUSE:
        return await _set_paused(state, ctx, True)
    if intent is AdminIntent.NOTIFICATION_RESUME:
        return await _set_paused(state, ctx, False)
    if intent is AdminIntent.NOTIFICATION_TEST:
        return await _send_test(state, ctx)
    return _overview(state)
