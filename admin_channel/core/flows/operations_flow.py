"""Day-to-day operations handler (read-only)."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List

from admin_channel.core.context import HandlerContext, handler_boundary
from admin_channel.core.errors import ExternalOperationError
from admin_channel.models.intents import AdminIntent
from admin_channel.models.state import SessionState, StateUpdate
from admin_channel.presenters.channel_formatter import Report, format_report
from admin_channel.utils.format import format_money
from admin_channel.utils.timeouts import with_timeout


logger = logging.getLogger("admin_channel.flows.operations")

RETRY_MESSAGE = "⏳ No pude consultar la operación en este momento. Intenta de nuevo."
MAX_LISTED = 10


def _hhmm(value: Any) -> str:
    text = str(value or "")
    return text[11:16] if len(text) >= 16 else text


def _listing(title: str, empty: str, lines: List[str]) -> Report:
    if not lines:
        return Report(title=title, body=[empty])
    body = lines[:MAX_LISTED]
    footer = f"… y {len(lines) - MAX_LISTED} más" if len(lines) > MAX_LISTED else None
    return Report(title=title, body=body, footer=footer)


async def build_report(state: SessionState, ctx: HandlerContext) -> Report:
    if ctx.analytics is None:
        raise ExternalOperationError("analytics source not configured")

    source = ctx.analytics
    tenant_id = state.caller.tenant_id
    timeout = ctx.settings.db_timeout_seconds
    intent = state.resolved_intent

    if intent is AdminIntent.OPERATION_INVENTORY_CHECK:
        alerts = await with_timeout(source.low_stock(tenant_id), timeout, "Inventory query")
        lines = [f"• {a.name}: {a.current:g} (mín. {a.minimum:g})" for a in alerts]
        return _listing("📦 Inventario bajo", "✅ Ningún producto bajo el mínimo.", lines)

    if intent is AdminIntent.OPERATION_PENDING_ORDERS:
        orders: List[Dict[str, Any]] = await with_timeout(source.pending_orders(tenant_id), timeout, "Pending orders")
        lines = [
            f"• #{o.get('order_number') or o.get('id')} - {o.get('status')} - {format_money(o.get('total'))}"
            for o in orders
        ]
        return _listing("🍽️ Pedidos pendientes", "✅ No hay pedidos pendientes.", lines)

    if intent is AdminIntent.OPERATION_ESCALATIONS:
        rows = await with_timeout(source.escalations(tenant_id), timeout, "Escalations")
        lines = [f"• {r.get('channel') or 'chat'} - {_hhmm(r.get('updated_at'))}" for r in rows]
        return _listing("🚨 Conversaciones escaladas", "✅ No hay escalaciones abiertas.", lines)

    if intent is AdminIntent.OPERATION_APPOINTMENTS_TODAY:
        now = ctx.clock()
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        rows = await with_timeout(
            source.appointments_between(tenant_id, start, start + timedelta(days=1)),
            timeout,
            "Appointments today",
        )
        lines = [
            f"• {_hhmm(r.get('scheduled_at'))} {r.get('patient_name') or ''} - {r.get('service_name') or ''}".rstrip(" -")
            for r in rows
        ]
        return _listing("📅 Citas de hoy", "No hay citas agendadas para hoy.", lines)

    if intent is AdminIntent.OPERATION_PENDING_LEADS:
        rows = await with_timeout(source.pending_leads(tenant_id), timeout, "Pending leads")
        lines = [f"• {r.get('name') or 'Sin nombre'} (score {r.get('score') or 0})" for r in rows]
        return _listing("👥 Leads sin atender", "✅ No hay leads pendientes.", lines)

    return Report(title="🛠️ Operación", body=["Puedo revisar inventario, pedidos, citas, leads y escalaciones."])


@handler_boundary("operations")
async def handle_operations(state: SessionState, ctx: HandlerContext) -> StateUpdate:
    try:
        report = await build_report(state, ctx)
    except ExternalOperationError as exc:
        logger.warning("Operations read failed for %s: %s", state.resolved_intent.value, exc)
        return StateUpdate(response=RETRY_MESSAGE, error=exc.code, should_end=True)

    message = format_report(report, state.caller.channel)
    return StateUpdate(response=message.text, keyboard=message.keyboard, should_end=True)
