"""Greeting and help handlers."""

from __future__ import annotations

from typing import List

from admin_channel.core.context import HandlerContext, handler_boundary
from admin_channel.models.intents import AdminIntent
from admin_channel.models.state import Capabilities, Keyboard, KeyboardButton, SessionState, StateUpdate
from admin_channel.presenters.channel_formatter import Report, format_report


NOT_UNDERSTOOD_PREFACE = "🤔 No entendí tu mensaje."


def main_menu(capabilities: Capabilities) -> Keyboard:
    """Quick-reply menu limited to what the caller may use."""

    rows: Keyboard = []
    if capabilities.can_view_analytics:
        rows.append(
            [
                KeyboardButton(text="📊 Resumen", callback_data="/resumen"),
                KeyboardButton(text="💰 Ventas", callback_data="/ventas"),
            ]
        )
    if capabilities.can_configure:
        rows.append([KeyboardButton(text="⚙️ Configurar", callback_data="/config")])
    rows.append([KeyboardButton(text="❓ Ayuda", callback_data="/ayuda")])
    return rows


def capability_lines(capabilities: Capabilities) -> List[str]:
    lines: List[str] = []
    if capabilities.can_view_analytics:
        lines += [
            "📊 Reportes",
            "/resumen - Resumen del día",
            "/semana - Resumen semanal",
            "/mes - Resumen mensual",
            "/ventas - Ventas",
            "/leads - Leads",
            "",
        ]
    if capabilities.can_configure:
        lines += [
            "⚙️ Configuración",
            "/servicios - Servicios",
            "/precios - Precios",
            "/horarios - Horarios",
            "/promociones - Promociones",
            "",
        ]
    lines += [
        "🛠️ Operación",
        '"inventario bajo", "pedidos pendientes", "citas de hoy"',
        "",
        "🔔 Alertas",
        "/alertas - Estado de notificaciones",
        "/pausar - Pausar alertas",
        "/reanudar - Reanudar alertas",
    ]
    return lines


@handler_boundary("greeting")
async def handle_greeting(state: SessionState, ctx: HandlerContext) -> StateUpdate:
    caller = state.caller
    title = f"👋 ¡Hola! Soy el asistente de {caller.business_name}" if caller.business_name else "👋 ¡Hola!"
    message = format_report(
        Report(
            title=title,
            body=["¿En qué te puedo ayudar hoy?"],
            footer="Escribe /ayuda para ver todo lo que puedo hacer.",
            buttons=main_menu(caller.capabilities),
        ),
        caller.channel,
    )
    return StateUpdate(response=message.text, keyboard=message.keyboard, should_end=True)


@handler_boundary("help")
async def handle_help(state: SessionState, ctx: HandlerContext) -> StateUpdate:
    caller = state.caller
    report = Report(
        title="❓ Esto es lo que puedo hacer",
        body=capability_lines(caller.capabilities),
        footer="También puedes escribirme en lenguaje natural.",
        buttons=main_menu(caller.capabilities),
    )
    message = format_report(report, caller.channel)
    text = message.text
    if state.error or state.resolved_intent is AdminIntent.UNKNOWN:
        text = f"{NOT_UNDERSTOOD_PREFACE}\n\n{text}"
    return StateUpdate(response=text, keyboard=message.keyboard, should_end=True)
