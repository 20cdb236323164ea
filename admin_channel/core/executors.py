"""Executors for confirmed pending actions.

One executor per entity type. Each validates the pending data again (it may
have been round-tripped through storage) and then performs exactly one
mutation against the business data store. A failed store result is raised as
``ExternalOperationError``; bad data is raised as ``ValidationError`` before
the store is touched.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from admin_channel.config.limits import READ_ATTEMPTS, READ_BACKOFF_SECONDS
from admin_channel.core.context import HandlerContext
from admin_channel.core.errors import ExternalOperationError, ValidationError
from admin_channel.models.records import DAY_NUMBERS, OperationResult
from admin_channel.models.state import CallerContext, EntityType, PendingAction, PendingActionType
from admin_channel.utils.timeouts import with_timeout


logger = logging.getLogger("admin_channel.executors")

DISCOUNT_TYPES = ("percentage", "fixed")

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")

Executor = Callable[[PendingAction, CallerContext, HandlerContext], Awaitable[OperationResult]]


def parse_hhmm(value: Any) -> Optional[Tuple[int, int]]:
    """Return (hour, minute) for a valid ``H:MM``/``HH:MM`` string, else None."""

    if not isinstance(value, str):
        return None
    match = _HHMM_RE.match(value.strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return hour, minute


def normalize_hhmm(value: str) -> str:
    parsed = parse_hhmm(value)
    if parsed is None:
        raise ValidationError(f"invalid time {value!r}", user_message=f"Hora inválida: {value}")
    return f"{parsed[0]:02d}:{parsed[1]:02d}"


def mutation_budget(db_timeout_seconds: float) -> float:
    """Upper bound for one store mutation.

    Covers every read attempt with its backoff and the write, plus one spare
    slot so the store's own per-call timeouts always fire first.
    """

    backoff = sum(READ_BACKOFF_SECONDS * (2 ** attempt) for attempt in range(READ_ATTEMPTS - 1))
    return db_timeout_seconds * (READ_ATTEMPTS + 2) + backoff


def _positive_number(data: Dict[str, Any], key: str, label: str) -> float:
    raw = data.get(key)
    try:
        value = float(str(raw).replace(",", "")) if raw is not None and not isinstance(raw, bool) else None
    except ValueError:
        value = None
    if value is None or value <= 0:
        raise ValidationError(f"{key} must be > 0, got {raw!r}", user_message=f"{label} debe ser mayor a 0.")
    return value


def _required_text(data: Dict[str, Any], key: str, label: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"missing {key}", user_message=f"Falta {label}.")
    return value.strip()


def _required_entity_id(pending: PendingAction) -> str:
    if not pending.entity_id:
        raise ValidationError("delete requires entity_id", user_message="No se indicó qué registro eliminar.")
    return pending.entity_id


def _unsupported(pending: PendingAction) -> ValidationError:
    return ValidationError(
        f"{pending.type.value} not supported for {pending.entity_type.value}",
        user_message="Esta acción no se puede ejecutar.",
    )


async def _call(ctx: HandlerContext, label: str, awaitable: Awaitable[OperationResult]) -> OperationResult:
    result = await with_timeout(awaitable, mutation_budget(ctx.settings.db_timeout_seconds), label)
    if not result.success:
        raise ExternalOperationError(
            f"{label} failed: {result.error}",
            user_message=result.error or ExternalOperationError.user_message,
        )
    return result


async def execute_service(pending: PendingAction, caller: CallerContext, ctx: HandlerContext) -> OperationResult:
    tenant_id = caller.tenant_id
    if pending.type is PendingActionType.CONFIRM_DELETE:
        entity_id = _required_entity_id(pending)
        return await _call(ctx, "Delete service", ctx.store.delete_service(tenant_id, entity_id))

    if pending.type in (PendingActionType.CONFIRM_CREATE, PendingActionType.CONFIRM_UPDATE):
        data = {
            "name": _required_text(pending.data, "name", "el nombre del servicio"),
            "price": _positive_number(pending.data, "price", "El precio"),
            "duration_minutes": int(pending.data.get("duration_minutes") or 60),
        }
        service_id = None
        if pending.type is PendingActionType.CONFIRM_UPDATE:
            service_id = _required_entity_id(pending)
        return await _call(ctx, "Upsert service", ctx.store.upsert_service(tenant_id, data, service_id))

    raise _unsupported(pending)


async def execute_price(pending: PendingAction, caller: CallerContext, ctx: HandlerContext) -> OperationResult:
    if pending.type not in (PendingActionType.CONFIRM_UPDATE, PendingActionType.CONFIRM_CREATE):
        raise _unsupported(pending)

    service_name = _required_text(pending.data, "service_name", "el nombre del servicio")
    price = _positive_number(pending.data, "price", "El precio")
    return await _call(
        ctx,
        "Update price",
        ctx.store.update_price_by_name(caller.tenant_id, service_name, price),
    )


async def execute_hours(pending: PendingAction, caller: CallerContext, ctx: HandlerContext) -> OperationResult:
    if pending.type not in (PendingActionType.CONFIRM_UPDATE, PendingActionType.CONFIRM_CREATE):
        raise _unsupported(pending)

    day = _required_text(pending.data, "day", "el día")
    if day.lower() not in DAY_NUMBERS:
        raise ValidationError(f"unknown day {day!r}", user_message=f'Día "{day}" no válido.')

    is_closed = bool(pending.data.get("is_closed"))
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    if not is_closed:
        open_time = normalize_hhmm(str(pending.data.get("open_time") or ""))
        close_time = normalize_hhmm(str(pending.data.get("close_time") or ""))
        if open_time >= close_time:
            raise ValidationError(
                f"open {open_time} >= close {close_time}",
                user_message="La hora de apertura debe ser anterior a la de cierre.",
            )

    return await _call(
        ctx,
        "Update hours",
        ctx.store.upsert_hours(caller.tenant_id, day.lower(), open_time, close_time, is_closed),
    )


async def execute_staff(pending: PendingAction, caller: CallerContext, ctx: HandlerContext) -> OperationResult:
    tenant_id = caller.tenant_id
    if pending.type is PendingActionType.CONFIRM_DELETE:
        entity_id = _required_entity_id(pending)
        return await _call(ctx, "Delete staff", ctx.store.delete_staff(tenant_id, entity_id))

    if pending.type in (PendingActionType.CONFIRM_CREATE, PendingActionType.CONFIRM_UPDATE):
        data = {
            "first_name": _required_text(pending.data, "first_name", "el nombre del empleado"),
            "last_name": str(pending.data.get("last_name") or ""),
            "role": str(pending.data.get("role") or "staff"),
        }
        staff_id = None
        if pending.type is PendingActionType.CONFIRM_UPDATE:
            staff_id = _required_entity_id(pending)
        return await _call(ctx, "Upsert staff", ctx.store.upsert_staff(tenant_id, data, staff_id))

    raise _unsupported(pending)


async def execute_promotion(pending: PendingAction, caller: CallerContext, ctx: HandlerContext) -> OperationResult:
    tenant_id = caller.tenant_id
    if pending.type is PendingActionType.CONFIRM_DELETE:
        entity_id = _required_entity_id(pending)
        return await _call(ctx, "Delete promotion", ctx.store.delete_promotion(tenant_id, entity_id))

    if pending.type in (PendingActionType.CONFIRM_CREATE, PendingActionType.CONFIRM_UPDATE):
        discount_type = str(pending.data.get("discount_type") or "percentage")
        if discount_type not in DISCOUNT_TYPES:
            raise ValidationError(f"unknown discount_type {discount_type!r}", user_message="Tipo de descuento inválido.")
        value = _positive_number(pending.data, "discount_value", "El descuento")
        if discount_type == "percentage" and value > 100:
            raise ValidationError(
                f"percentage discount {value} > 100",
                user_message="El descuento porcentual debe estar entre 0 y 100.",
            )
        data = {
            "name": _required_text(pending.data, "name", "el nombre de la promoción"),
            "discount_type": discount_type,
            "discount_value": value,
            "description": pending.data.get("description"),
        }
        promotion_id = None
        if pending.type is PendingActionType.CONFIRM_UPDATE:
            promotion_id = _required_entity_id(pending)
        return await _call(ctx, "Upsert promotion", ctx.store.upsert_promotion(tenant_id, data, promotion_id))

    raise _unsupported(pending)


EXECUTORS: Dict[EntityType, Executor] = {
    EntityType.SERVICE: execute_service,
    EntityType.PRICE: execute_price,
    EntityType.HOURS: execute_hours,
    EntityType.STAFF: execute_staff,
    EntityType.PROMOTION: execute_promotion,
}


async def execute_pending_action(
    pending: PendingAction,
    caller: CallerContext,
    ctx: HandlerContext,
) -> OperationResult:
    """Dispatch ``pending`` to its entity executor.

    Raises ``ValidationError`` or ``ExternalOperationError``.
    """

    executor = EXECUTORS.get(pending.entity_type)
    if executor is None:
        raise _unsupported(pending)

    logger.info(
        "Executing %s/%s tenant=%s entity_id=%s",
        pending.type.value,
        pending.entity_type.value,
        caller.tenant_id,
        pending.entity_id,
    )
    return await executor(pending, caller, ctx)
