"""Analytics handler: summaries and focused reports.

Summary reports issue their reads concurrently; each read is bounded by the
DB timeout and the report is composed only once all of them have returned.
A timeout or failure of any read yields a "try again" answer.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, List, Optional, TypeVar

from admin_channel.core.context import HandlerContext, handler_boundary
from admin_channel.core.errors import ExternalOperationError
from admin_channel.models.intents import AdminIntent
from admin_channel.models.state import KeyboardButton, SessionState, StateUpdate
from admin_channel.presenters.channel_formatter import Report, format_report
from admin_channel.services.analytics import (
    AnalyticsSource,
    Period,
    period_bounds,
    previous_period_bounds,
    revenue_change,
)
from admin_channel.utils.format import format_money
from admin_channel.utils.logger import log_warn
from admin_channel.utils.timeouts import with_timeout


logger = logging.getLogger("admin_channel.flows.analytics")

T = TypeVar("T")

RETRY_MESSAGE = "⏳ No pude obtener los datos a tiempo. Intenta de nuevo en unos momentos."

PERIOD_LABELS = {"daily": "de Hoy", "weekly": "Semanal", "monthly": "Mensual"}

SUMMARY_PERIODS = {
    AdminIntent.ANALYTICS_DAILY_SUMMARY: "daily",
    AdminIntent.ANALYTICS_WEEKLY_SUMMARY: "weekly",
    AdminIntent.ANALYTICS_MONTHLY_SUMMARY: "monthly",
}


def _requested_period(state: SessionState, default: Period) -> Period:
    period = state.extracted_entities.get("period")
    if period in PERIOD_LABELS:
        return period
    return default


def _source(ctx: HandlerContext) -> AnalyticsSource:
    if ctx.analytics is None:
        raise ExternalOperationError("analytics source not configured")
    return ctx.analytics


def _bounded(ctx: HandlerContext, awaitable: Awaitable[T], label: str) -> Awaitable[T]:
    return with_timeout(awaitable, ctx.settings.db_timeout_seconds, label)


async def _gather_reads(*reads: Awaitable[Any]) -> List[Any]:
    """Await every read, then raise the first failure.

    No read is left running once the report is answered, successful or not.
    """

    results = await asyncio.gather(*reads, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


def _change_label(change: int) -> str:
    arrow = "📈" if change > 0 else "📉" if change < 0 else "➖"
    return f"{arrow} {change:+d}% vs periodo anterior"


async def _summary(state: SessionState, ctx: HandlerContext, period: Period) -> Report:
    source = _source(ctx)
    tenant_id = state.caller.tenant_id
    now = ctx.clock()
    start, end = period_bounds(period, now)
    prev_start, prev_end = previous_period_bounds(period, now)

    sales, leads, ai, ops, previous = await _gather_reads(
        _bounded(ctx, source.sales(tenant_id, start, end), "Sales query"),
        _bounded(ctx, source.leads(tenant_id, start, end), "Leads query"),
        _bounded(ctx, source.ai_activity(tenant_id, start, end), "AI query"),
        _bounded(ctx, source.operations(tenant_id, start, end, state.caller.vertical), "Operations query"),
        _bounded(ctx, source.sales(tenant_id, prev_start, prev_end), "Previous sales query"),
    )

    body = [
        f"💰 Ingresos: {format_money(sales.total)}",
        _change_label(revenue_change(sales.total, previous.total)),
        f"🧾 Ventas: {sales.count} (ticket promedio {format_money(sales.average_ticket)})",
        "",
        f"👥 Leads: {leads.total} ({leads.hot} calientes, conversión {leads.conversion_rate}%)",
        f"🤖 Conversaciones IA: {ai.conversations} (escalación {ai.escalation_rate}%)",
    ]
    if ops.appointments is not None:
        body.append(f"📅 Citas: {ops.appointments}")
    if ops.orders is not None:
        body.append(f"🍽️ Pedidos: {ops.orders}")

    return Report(
        title=f"📊 Resumen {PERIOD_LABELS[period]}",
        body=body,
        buttons=[
            [
                KeyboardButton(text="📅 Semana", callback_data="/semana"),
                KeyboardButton(text="🗓️ Mes", callback_data="/mes"),
            ]
        ],
    )


async def _sales(state: SessionState, ctx: HandlerContext, period: Period, *, with_change: bool) -> Report:
    source = _source(ctx)
    tenant_id = state.caller.tenant_id
    now = ctx.clock()
    start, end = period_bounds(period, now)

    if with_change:
        prev_start, prev_end = previous_period_bounds(period, now)
        sales, previous = await _gather_reads(
            _bounded(ctx, source.sales(tenant_id, start, end), "Sales query"),
            _bounded(ctx, source.sales(tenant_id, prev_start, prev_end), "Previous sales query"),
        )
        body = [
            f"💰 Ingresos: {format_money(sales.total)}",
            f"Periodo anterior: {format_money(previous.total)}",
            _change_label(revenue_change(sales.total, previous.total)),
        ]
        return Report(title=f"💵 Ingresos {PERIOD_LABELS[period]}", body=body)

    sales = await _bounded(ctx, source.sales(tenant_id, start, end), "Sales query")
    return Report(
        title=f"🧾 Ventas {PERIOD_LABELS[period]}",
        body=[
            f"Total: {format_money(sales.total)}",
            f"Ventas: {sales.count}",
            f"Ticket promedio: {format_money(sales.average_ticket)}",
        ],
    )


async def _leads(state: SessionState, ctx: HandlerContext, period: Period) -> Report:
    start, end = period_bounds(period, ctx.clock())
    leads = await _bounded(ctx, _source(ctx).leads(state.caller.tenant_id, start, end), "Leads query")
    return Report(
        title=f"👥 Leads {PERIOD_LABELS[period]}",
        body=[
            f"Total: {leads.total}",
            f"🔥 Calientes: {leads.hot}",
            f"🌤️ Tibios: {leads.warm}",
            f"❄️ Fríos: {leads.cold}",
            f"✅ Convertidos: {leads.converted} ({leads.conversion_rate}%)",
        ],
    )


async def _operations_counts(state: SessionState, ctx: HandlerContext, period: Period, *, orders: bool) -> Report:
    start, end = period_bounds(period, ctx.clock())
    # The operations read counts orders for restaurants, appointments otherwise.
    vertical = "restaurant" if orders else "clinic"
    ops = await _bounded(
        ctx,
        _source(ctx).operations(state.caller.tenant_id, start, end, vertical),
        "Operations query",
    )
    if orders:
        return Report(title=f"🍽️ Pedidos {PERIOD_LABELS[period]}", body=[f"Pedidos: {ops.orders or 0}"])
    return Report(title=f"📅 Citas {PERIOD_LABELS[period]}", body=[f"Citas agendadas: {ops.appointments or 0}"])


async def _inventory(state: SessionState, ctx: HandlerContext) -> Report:
    alerts = await _bounded(ctx, _source(ctx).low_stock(state.caller.tenant_id), "Inventory query")
    if not alerts:
        return Report(title="📦 Inventario", body=["✅ Todo el inventario está por encima del mínimo."])
    out_of_stock = sum(1 for a in alerts if a.out_of_stock)
    body = [f"⚠️ Bajo mínimo: {len(alerts)}", f"⛔ Agotados: {out_of_stock}", ""]
    body.extend(f"• {a.name}: {a.current:g}/{a.minimum:g}" for a in alerts[:5])
    return Report(title="📦 Inventario", body=body)


async def _ai_performance(state: SessionState, ctx: HandlerContext, period: Period) -> Report:
    start, end = period_bounds(period, ctx.clock())
    ai = await _bounded(ctx, _source(ctx).ai_activity(state.caller.tenant_id, start, end), "AI query")
    return Report(
        title=f"🤖 Desempeño de IA {PERIOD_LABELS[period]}",
        body=[
            f"Conversaciones: {ai.conversations}",
            f"Mensajes procesados: {ai.messages}",
            f"Resueltas: {ai.resolution_rate}%",
            f"Escaladas: {ai.escalation_rate}%",
        ],
    )


async def build_report(state: SessionState, ctx: HandlerContext) -> Optional[Report]:
    intent = state.resolved_intent
    if intent in SUMMARY_PERIODS:
        return await _summary(state, ctx, SUMMARY_PERIODS[intent])
    if intent is AdminIntent.ANALYTICS_SALES:
        return await _sales(state, ctx, _requested_period(state, "daily"), with_change=False)
    if intent is AdminIntent.ANALYTICS_REVENUE:
        return await _sales(state, ctx, _requested_period(state, "monthly"), with_change=True)
    if intent is AdminIntent.ANALYTICS_LEADS:
        return await _leads(state, ctx, _requested_period(state, "weekly"))
    if intent is AdminIntent.ANALYTICS_ORDERS:
        return await _operations_counts(state, ctx, _requested_period(state, "daily"), orders=True)
    if intent is AdminIntent.ANALYTICS_APPOINTMENTS:
        return await _operations_counts(state, ctx, _requested_period(state, "daily"), orders=False)
    if intent is AdminIntent.ANALYTICS_INVENTORY:
        return await _inventory(state, ctx)
    if intent is AdminIntent.ANALYTICS_AI_PERFORMANCE:
        return await _ai_performance(state, ctx, _requested_period(state, "weekly"))
    return None


@handler_boundary("analytics")
async def handle_analytics(state: SessionState, ctx: HandlerContext) -> StateUpdate:
    try:
        report = await build_report(state, ctx)
    except ExternalOperationError as exc:
        log_warn(
            "Analytics read failed",
            tenant_id=state.caller.tenant_id,
            intent=state.resolved_intent.value,
            timed_out=exc.timed_out,
        )
        return StateUpdate(response=RETRY_MESSAGE, error=exc.code, should_end=True)

    if report is None:
        report = Report(title="📊 Reportes", body=["Prueba /resumen, /semana, /mes o /ventas."])

    message = format_report(report, state.caller.channel)
    return StateUpdate(response=message.text, keyboard=message.keyboard, should_end=True)
