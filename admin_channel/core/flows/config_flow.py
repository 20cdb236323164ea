"""Configuration handler: services, prices, hours, staff and promotions.

Mutations are never applied from free text. A recognized request becomes a
pending action plus a confirm/cancel keyboard; the confirm handler applies
it on a later turn. Requests with missing or invalid fields get a clarifying
answer and no pending action.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from admin_channel.core.context import HandlerContext, handler_boundary
from admin_channel.core.errors import ExternalOperationError
from admin_channel.core.executors import parse_hhmm
from admin_channel.core.pending import create_pending_action
from admin_channel.models.intents import AdminIntent
from admin_channel.models.records import (
    DAY_LABELS,
    DAY_NUMBERS,
    HoursRecord,
    PromotionRecord,
    ServiceRecord,
    StaffRecord,
)
from admin_channel.models.state import (
    EntityType,
    KeyboardButton,
    PendingActionType,
    SessionState,
    StateUpdate,
)
from admin_channel.presenters.channel_formatter import Report, confirmation_keyboard, format_report
from admin_channel.utils.format import format_money
from admin_channel.utils.timeouts import with_timeout


logger = logging.getLogger("admin_channel.flows.config")

_DAY_PATTERN = r"(lunes|martes|mi[eé]rcoles|jueves|viernes|s[aá]bado|domingo)"

PRICE_RE = re.compile(r"\$\s*(\d+(?:,\d{3})*(?:\.\d{1,2})?)")
DURATION_RE = re.compile(r"(\d+)\s*min", re.IGNORECASE)
SERVICE_NAME_RE = re.compile(r"servicio\s+([^$]+?)\s*\$", re.IGNORECASE)
SERVICE_DELETE_RE = re.compile(r"servicio\s+(.+)$", re.IGNORECASE)
PRICE_TARGET_RES = (
    re.compile(r"precio\s+de\s+([^$]+?)\s+(?:a\s+)?\$", re.IGNORECASE),
    re.compile(r"cambiar\s+([^$]+?)\s+(?:a\s+)?\$", re.IGNORECASE),
)
DAY_RE = re.compile(_DAY_PATTERN, re.IGNORECASE)
TIME_RANGE_RE = re.compile(r"(\d{1,2}:\d{2})\s*(?:-|a)\s*(\d{1,2}:\d{2})")
CLOSE_DAY_RE = re.compile(r"cerrar\s+(?:el\s+)?" + _DAY_PATTERN, re.IGNORECASE)
STAFF_RE = re.compile(r"(?:empleado|empleada|personal)\s+(.+?)(?:\s+como\s+(.+))?$", re.IGNORECASE)
PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")
PROMO_TARGET_RE = re.compile(r"\ben\s+(.+)$", re.IGNORECASE)
PROMO_DELETE_RE = re.compile(r"promoci[oó]n\s+(.+)$", re.IGNORECASE)

_LIST_WORDS = ("ver", "lista", "mostrar", "activas")
_CREATE_WORDS = ("agregar", "nuevo", "nueva", "crear", "añadir")
_DELETE_WORDS = ("eliminar", "quitar", "borrar", "terminar")


def _has_word(text: str, words) -> bool:
    tokens = set(re.findall(r"\w+", text.lower()))
    return any(word in tokens for word in words)


def _parse_price(text: str) -> Optional[float]:
    match = PRICE_RE.search(text)
    if not match:
        return None
    return float(match.group(1).replace(",", ""))


def _entity_number(entities: Dict[str, Any], key: str) -> Optional[float]:
    value = entities.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.replace("$", "").replace(",", "").strip())
        except ValueError:
            return None
    return None


def _entity_text(entities: Dict[str, Any], key: str) -> Optional[str]:
    value = entities.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _normalize_day(day: str) -> str:
    return (
        day.lower()
        .replace("é", "e")
        .replace("á", "a")
    )


def _day_label(day: str) -> str:
    number = DAY_NUMBERS.get(_normalize_day(day))
    return DAY_LABELS[number] if number is not None else day.capitalize()


def _answer(state: SessionState, report: Report) -> StateUpdate:
    message = format_report(report, state.caller.channel)
    return StateUpdate(response=message.text, keyboard=message.keyboard, should_end=True)


def _propose(
    state: SessionState,
    ctx: HandlerContext,
    *,
    action_type: PendingActionType,
    entity_type: EntityType,
    data: Dict[str, Any],
    summary: List[str],
    entity_id: Optional[str] = None,
) -> StateUpdate:
    pending = create_pending_action(
        action_type=action_type,
        entity_type=entity_type,
        data=data,
        entity_id=entity_id,
        now=ctx.clock(),
        ttl_seconds=ctx.settings.pending_ttl_seconds,
    )
    minutes = max(1, ctx.settings.pending_ttl_seconds // 60)
    message = format_report(
        Report(
            title="📝 Confirma la siguiente acción",
            body=summary,
            footer=f"¿Confirmas? La propuesta expira en {minutes} minutos.",
        ),
        state.caller.channel,
    )
    logger.info(
        "Proposed %s/%s tenant=%s",
        action_type.value,
        entity_type.value,
        state.caller.tenant_id,
    )
    return StateUpdate(
        response=message.text,
        keyboard=confirmation_keyboard(state.caller.channel),
        pending_action=pending,
        should_end=True,
    )


async def _read(ctx: HandlerContext, label: str, awaitable):
    result = await with_timeout(awaitable, ctx.settings.db_timeout_seconds, label)
    if not result.success:
        raise ExternalOperationError(f"{label} failed: {result.error}")
    return result


async def _services(state: SessionState, ctx: HandlerContext) -> List[ServiceRecord]:
    result = await _read(ctx, "Get services", ctx.store.get_services(state.caller.tenant_id))
    return [ServiceRecord.model_validate(row) for row in result.data.get("services") or []]


# Services


async def _handle_services(state: SessionState, ctx: HandlerContext) -> StateUpdate:
    text = state.inbound.text
    entities = state.extracted_entities

    if _has_word(text, _CREATE_WORDS):
        price = _parse_price(text)
        if price is None:
            price = _entity_number(entities, "price")
        match = SERVICE_NAME_RE.search(text)
        name = match.group(1).strip() if match else _entity_text(entities, "serviceName")
        if not name or price is None or price <= 0:
            return _answer(
                state,
                Report(
                    title="📋 Para agregar un servicio necesito",
                    body=["• Nombre del servicio", "• Precio (mayor a 0)"],
                    footer='Ejemplo: "agregar servicio Limpieza Dental $500"',
                ),
            )
        duration_match = DURATION_RE.search(text)
        duration = int(duration_match.group(1)) if duration_match else 60
        return _propose(
            state,
            ctx,
            action_type=PendingActionType.CONFIRM_CREATE,
            entity_type=EntityType.SERVICE,
            data={"name": name, "price": price, "duration_minutes": duration},
            summary=[
                "Crear servicio:",
                f"• Nombre: {name}",
                f"• Precio: {format_money(price)}",
                f"• Duración: {duration} min",
            ],
        )

    if _has_word(text, _DELETE_WORDS):
        match = SERVICE_DELETE_RE.search(text)
        name = match.group(1).strip() if match else _entity_text(entities, "serviceName")
        if not name:
            return _answer(
                state,
                Report(
                    title="⚠️ Para eliminar un servicio, especifica el nombre",
                    body=['Ejemplo: "eliminar servicio Limpieza Dental"'],
                    footer="El servicio no se borra, solo se desactiva.",
                ),
            )
        services = await _services(state, ctx)
        target = next((s for s in services if s.name.lower() == name.lower()), None)
        if target is None:
            return _answer(state, Report(title=f'❌ No encontré el servicio "{name}"'))
        return _propose(
            state,
            ctx,
            action_type=PendingActionType.CONFIRM_DELETE,
            entity_type=EntityType.SERVICE,
            entity_id=target.id,
            data={"name": target.name},
            summary=["Desactivar servicio:", f"• {target.name} ({format_money(target.price)})"],
        )

    services = await _services(state, ctx)
    if not services:
        return _answer(
            state,
            Report(
                title="📋 No tienes servicios configurados",
                body=["Para agregar uno:", '"agregar servicio Consulta General $500"'],
            ),
        )
    lines = [
        f"{i}. {s.name} - {format_money(s.price)} ({s.duration_minutes} min)"
        for i, s in enumerate(services, start=1)
    ]
    return _answer(
        state,
        Report(
            title="📋 Tus Servicios",
            body=lines,
            footer=(
                "Para modificar:\n"
                '• "cambiar precio de [nombre] a $[precio]"\n'
                '• "eliminar servicio [nombre]"'
            ),
        ),
    )


# Prices


async def _handle_prices(state: SessionState, ctx: HandlerContext) -> StateUpdate:
    text = state.inbound.text
    entities = state.extracted_entities

    price = _parse_price(text)
    if price is None:
        price = _entity_number(entities, "price")
    name = None
    for pattern in PRICE_TARGET_RES:
        match = pattern.search(text)
        if match:
            name = match.group(1).strip()
            break
    name = name or _entity_text(entities, "serviceName")

    if name and price is not None and price > 0:
        return _propose(
            state,
            ctx,
            action_type=PendingActionType.CONFIRM_UPDATE,
            entity_type=EntityType.PRICE,
            data={"service_name": name, "price": price},
            summary=["Cambiar precio:", f"• Servicio: {name}", f"• Nuevo precio: {format_money(price)}"],
        )

    services = await _services(state, ctx)
    lines = [f"• {s.name}: {format_money(s.price)}" for s in services] or ["No hay servicios configurados."]
    return _answer(
        state,
        Report(
            title="💰 Precios Actuales",
            body=lines,
            footer=(
                "Para cambiar un precio:\n"
                '"cambiar precio de [servicio] a $[nuevo precio]"\n\n'
                'Ejemplo: "cambiar precio de Consulta a $600"'
            ),
        ),
    )


# Hours


async def _handle_hours(state: SessionState, ctx: HandlerContext) -> StateUpdate:
    text = state.inbound.text

    close_match = CLOSE_DAY_RE.search(text)
    if close_match:
        day = _normalize_day(close_match.group(1))
        return _propose(
            state,
            ctx,
            action_type=PendingActionType.CONFIRM_UPDATE,
            entity_type=EntityType.HOURS,
            data={"day": day, "is_closed": True},
            summary=["Cerrar día:", f"• {_day_label(day)}: Cerrado"],
        )

    day_match = DAY_RE.search(text)
    time_match = TIME_RANGE_RE.search(text)
    if day_match and time_match:
        day = _normalize_day(day_match.group(1))
        opening = parse_hhmm(time_match.group(1))
        closing = parse_hhmm(time_match.group(2))
        if opening is None or closing is None or opening >= closing:
            return _answer(
                state,
                Report(
                    title="⚠️ Horario inválido",
                    body=["Usa horas HH:MM y una apertura anterior al cierre."],
                    footer='Ejemplo: "cambiar lunes a 9:00-18:00"',
                ),
            )
        open_time = f"{opening[0]:02d}:{opening[1]:02d}"
        close_time = f"{closing[0]:02d}:{closing[1]:02d}"
        return _propose(
            state,
            ctx,
            action_type=PendingActionType.CONFIRM_UPDATE,
            entity_type=EntityType.HOURS,
            data={"day": day, "open_time": open_time, "close_time": close_time, "is_closed": False},
            summary=["Cambiar horario:", f"• {_day_label(day)}: {open_time} - {close_time}"],
        )

    result = await _read(ctx, "Get hours", ctx.store.get_hours(state.caller.tenant_id))
    hours = [HoursRecord.model_validate(row) for row in result.data.get("hours") or []]
    lines = []
    for h in hours:
        label = DAY_LABELS[h.day_of_week] if 0 <= h.day_of_week < len(DAY_LABELS) else str(h.day_of_week)
        lines.append(f"• {label}: Cerrado" if h.is_closed else f"• {label}: {h.open_time} - {h.close_time}")
    return _answer(
        state,
        Report(
            title="🕐 Horarios de Atención",
            body=lines or ["No hay horarios configurados."],
            footer='Para modificar:\n• "cambiar lunes a 9:00-18:00"\n• "cerrar domingo"',
        ),
    )


# Staff


async def _staff(state: SessionState, ctx: HandlerContext) -> List[StaffRecord]:
    result = await _read(ctx, "Get staff", ctx.store.get_staff(state.caller.tenant_id))
    return [StaffRecord.model_validate(row) for row in result.data.get("staff") or []]


async def _handle_staff(state: SessionState, ctx: HandlerContext) -> StateUpdate:
    text = state.inbound.text
    match = STAFF_RE.search(text)

    if _has_word(text, _CREATE_WORDS):
        full_name = match.group(1).strip() if match else _entity_text(state.extracted_entities, "staffName")
        if not full_name:
            return _answer(
                state,
                Report(
                    title="👥 Para agregar personal necesito el nombre",
                    body=['Ejemplo: "agregar empleado Ana López como recepcionista"'],
                ),
            )
        first_name, _, last_name = full_name.partition(" ")
        role = match.group(2).strip() if match and match.group(2) else "staff"
        return _propose(
            state,
            ctx,
            action_type=PendingActionType.CONFIRM_CREATE,
            entity_type=EntityType.STAFF,
            data={"first_name": first_name, "last_name": last_name.strip(), "role": role},
            summary=["Agregar empleado:", f"• Nombre: {full_name}", f"• Rol: {role}"],
        )

    if _has_word(text, _DELETE_WORDS):
        name = match.group(1).strip() if match else _entity_text(state.extracted_entities, "staffName")
        if not name:
            return _answer(
                state,
                Report(title="👥 Indica a quién eliminar", body=['Ejemplo: "eliminar empleado Ana López"']),
            )
        wanted = name.lower()
        staff = await _staff(state, ctx)
        target = next(
            (s for s in staff if s.full_name.lower() == wanted or s.first_name.lower() == wanted),
            None,
        )
        if target is None:
            return _answer(state, Report(title=f'❌ No encontré a "{name}" en tu personal'))
        return _propose(
            state,
            ctx,
            action_type=PendingActionType.CONFIRM_DELETE,
            entity_type=EntityType.STAFF,
            entity_id=target.id,
            data={"first_name": target.first_name, "last_name": target.last_name},
            summary=["Dar de baja:", f"• {target.full_name} ({target.role})"],
        )

    staff = await _staff(state, ctx)
    lines = [f"• {s.full_name} - {s.role}" for s in staff] or ["No hay personal registrado."]
    return _answer(
        state,
        Report(
            title="👥 Gestión de Personal",
            body=lines,
            footer=(
                '• "agregar empleado [nombre] como [rol]"\n'
                '• "eliminar empleado [nombre]"'
            ),
        ),
    )


# Promotions


async def _promotions(state: SessionState, ctx: HandlerContext) -> List[PromotionRecord]:
    result = await _read(ctx, "Get promotions", ctx.store.get_active_promotions(state.caller.tenant_id))
    return [PromotionRecord.model_validate(row) for row in result.data.get("promotions") or []]


def _discount_label(discount_type: str, value: float) -> str:
    if discount_type == "percentage":
        return f"{value:g}%"
    return format_money(value)


async def _handle_promotions(state: SessionState, ctx: HandlerContext) -> StateUpdate:
    text = state.inbound.text

    if _has_word(text, _CREATE_WORDS):
        percent = PERCENT_RE.search(text)
        if percent:
            discount_type, value = "percentage", float(percent.group(1))
        else:
            discount_type, value = "fixed", _parse_price(text)
        if value is None:
            value = _entity_number(state.extracted_entities, "discount")
        if value is None or value <= 0 or (discount_type == "percentage" and value > 100):
            return _answer(
                state,
                Report(
                    title="🎁 Para crear una promoción",
                    body=['"crear promoción 20% en [servicio]"', '"crear promoción $100 de descuento"'],
                    footer="El porcentaje debe estar entre 1 y 100.",
                ),
            )
        target = PROMO_TARGET_RE.search(text)
        label = _discount_label(discount_type, value)
        name = f"Promoción {label}" + (f" en {target.group(1).strip()}" if target else "")
        return _propose(
            state,
            ctx,
            action_type=PendingActionType.CONFIRM_CREATE,
            entity_type=EntityType.PROMOTION,
            data={"name": name, "discount_type": discount_type, "discount_value": value},
            summary=["Crear promoción:", f"• Nombre: {name}", f"• Descuento: {label}"],
        )

    if _has_word(text, _DELETE_WORDS):
        match = PROMO_DELETE_RE.search(text)
        name = match.group(1).strip() if match else None
        if not name:
            return _answer(
                state,
                Report(title="🎁 Indica qué promoción terminar", body=['Ejemplo: "terminar promoción Verano"']),
            )
        promotions = await _promotions(state, ctx)
        target = next((p for p in promotions if name.lower() in p.name.lower()), None)
        if target is None:
            return _answer(state, Report(title=f'❌ No encontré una promoción activa "{name}"'))
        return _propose(
            state,
            ctx,
            action_type=PendingActionType.CONFIRM_DELETE,
            entity_type=EntityType.PROMOTION,
            entity_id=target.id,
            data={"name": target.name},
            summary=["Terminar promoción:", f"• {target.name}"],
        )

    if _has_word(text, _LIST_WORDS) or text.strip().startswith("/"):
        promotions = await _promotions(state, ctx)
        if not promotions:
            return _answer(
                state,
                Report(
                    title="🎁 No hay promociones activas",
                    body=["Para crear una:", '"crear promoción 20% en Consulta"'],
                ),
            )
        lines = []
        for p in promotions:
            until = f" (hasta {p.end_date[:10]})" if p.end_date else ""
            lines.append(f"• {p.name}: {_discount_label(p.discount_type, p.discount_value)} OFF{until}")
        return _answer(state, Report(title="🎁 Promociones Activas", body=lines))

    return _answer(
        state,
        Report(
            title="🎁 Gestión de Promociones",
            body=[
                '• "ver promociones activas"',
                '• "crear promoción 20% en [servicio]"',
                '• "terminar promoción [nombre]"',
            ],
        ),
    )


# Informational


def _handle_ai_settings(state: SessionState) -> StateUpdate:
    return _answer(
        state,
        Report(
            title="🤖 Configuración de IA",
            body=[
                "La configuración de IA se realiza desde el dashboard web.",
                "",
                "Puedes ajustar:",
                "• Tono de las respuestas",
                "• Instrucciones personalizadas",
                "• Respuestas automáticas",
            ],
            footer="Ve a: Dashboard > Configuración > IA",
        ),
    )


def _handle_notification_config(state: SessionState) -> StateUpdate:
    return _answer(
        state,
        Report(
            title="🔔 Configuración de Notificaciones",
            body=[
                "Alertas disponibles:",
                "• Resumen diario (8:00 AM)",
                "• Leads calientes",
                "• Inventario bajo",
                "• Escalaciones",
            ],
            footer='¿Qué deseas hacer? "pausar alertas" o "reanudar alertas"',
            buttons=[
                [
                    KeyboardButton(text="⏸️ Pausar alertas", callback_data="/pausar"),
                    KeyboardButton(text="▶️ Reanudar", callback_data="/reanudar"),
                ]
            ],
        ),
    )


async def _handle_menu(state: SessionState, ctx: HandlerContext) -> StateUpdate:
    services = await _services(state, ctx)
    return _answer(
        state,
        Report(
            title="⚙️ Configuración",
            body=[f"Servicios activos: {len(services)}", "", "¿Qué deseas configurar?"],
            buttons=[
                [
                    KeyboardButton(text="📋 Servicios", callback_data="/servicios"),
                    KeyboardButton(text="💰 Precios", callback_data="/precios"),
                ],
                [
                    KeyboardButton(text="🕐 Horarios", callback_data="/horarios"),
                    KeyboardButton(text="🎁 Promociones", callback_data="/promociones"),
                ],
            ],
        ),
    )


@handler_boundary("config")
async def handle_config(state: SessionState, ctx: HandlerContext) -> StateUpdate:
    intent = state.resolved_intent
    if intent is AdminIntent.CONFIG_SERVICES:
        # "/config" lands here too; without arguments it shows the menu.
        if state.extracted_entities.get("command") == "/config" and not state.extracted_entities.get("args"):
            return await _handle_menu(state, ctx)
        return await _handle_services(state, ctx)
    if intent is AdminIntent.CONFIG_PRICES:
        return await _handle_prices(state, ctx)
    if intent is AdminIntent.CONFIG_HOURS:
        return await _handle_hours(state, ctx)
    if intent is AdminIntent.CONFIG_STAFF:
        return await _handle_staff(state, ctx)
    if intent is AdminIntent.CONFIG_PROMOTIONS:
        return await _handle_promotions(state, ctx)
    if intent is AdminIntent.CONFIG_AI_SETTINGS:
        return _handle_ai_settings(state)
    if intent is AdminIntent.CONFIG_NOTIFICATIONS:
        return _handle_notification_config(state)
    return await _handle_menu(state, ctx)
