"""Business data store for the admin channel, backed by Supabase.

Tenant-scoped CRUD over services, prices, branch hours, staff and
promotions. Expected domain failures (unknown service, ambiguous name) come
back as ``OperationResult(success=False)``; infrastructure failures and
timeouts raise ``ExternalOperationError``.

Reads go through the retrying executor helper of ``SupabaseRepository``;
each mutation is a single attempt.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

from admin_channel.models.records import DAY_NUMBERS, OperationResult
from admin_channel.services.supabase_base import SupabaseRepository, now_iso, rows_of


logger = logging.getLogger("admin_channel.business_store")


class BusinessDataStore(Protocol):
    async def get_services(self, tenant_id: str) -> OperationResult: ...

    async def upsert_service(
        self, tenant_id: str, data: Dict[str, Any], service_id: Optional[str] = None
    ) -> OperationResult: ...

    async def delete_service(self, tenant_id: str, service_id: str) -> OperationResult: ...

    async def update_price_by_name(self, tenant_id: str, service_name: str, price: float) -> OperationResult: ...

    async def get_hours(self, tenant_id: str) -> OperationResult: ...

    async def upsert_hours(
        self,
        tenant_id: str,
        day: str,
        open_time: Optional[str],
        close_time: Optional[str],
        is_closed: bool = False,
    ) -> OperationResult: ...

    async def get_staff(self, tenant_id: str) -> OperationResult: ...

    async def upsert_staff(
        self, tenant_id: str, data: Dict[str, Any], staff_id: Optional[str] = None
    ) -> OperationResult: ...

    async def delete_staff(self, tenant_id: str, staff_id: str) -> OperationResult: ...

    async def get_active_promotions(self, tenant_id: str) -> OperationResult: ...

    async def upsert_promotion(
        self, tenant_id: str, data: Dict[str, Any], promotion_id: Optional[str] = None
    ) -> OperationResult: ...

    async def delete_promotion(self, tenant_id: str, promotion_id: str) -> OperationResult: ...


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SupabaseBusinessStore(SupabaseRepository):
    """``BusinessDataStore`` over the tenant tables in Supabase."""

    # Services

    async def get_services(self, tenant_id: str) -> OperationResult:
        def _select() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("services")
                .select("id, name, price, duration_minutes, is_active")
                .eq("tenant_id", tenant_id)
                .eq("is_active", True)
                .order("name")
                .execute()
            )
            return rows_of(resp)

        rows = await self._read("Get services", _select)
        return OperationResult.ok(services=rows)

    async def upsert_service(
        self, tenant_id: str, data: Dict[str, Any], service_id: Optional[str] = None
    ) -> OperationResult:
        row = {
            "tenant_id": tenant_id,
            "name": data["name"],
            "price": data["price"],
            "duration_minutes": int(data.get("duration_minutes") or 60),
            "description": data.get("description"),
            "is_active": True,
            "updated_at": now_iso(),
        }

        def _save() -> List[Dict[str, Any]]:
            table = self._client.table("services")
            if service_id:
                resp = table.update(row).eq("id", service_id).eq("tenant_id", tenant_id).execute()
            else:
                resp = table.insert({**row, "created_at": now_iso()}).execute()
            return rows_of(resp)

        rows = await self._write("Upsert service", _save)
        if not rows:
            return OperationResult.fail("No se encontró el servicio")
        entity_id = rows[0].get("id")
        logger.info("Service saved tenant=%s id=%s", tenant_id, entity_id)
        return OperationResult.ok(entity_id, name=row["name"], price=row["price"])

    async def delete_service(self, tenant_id: str, service_id: str) -> OperationResult:
        # Soft delete: the row is kept and marked inactive.
        def _update() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("services")
                .update({"is_active": False, "updated_at": now_iso()})
                .eq("id", service_id)
                .eq("tenant_id", tenant_id)
                .execute()
            )
            return rows_of(resp)

        rows = await self._write("Delete service", _update)
        if not rows:
            return OperationResult.fail("No se encontró el servicio")
        return OperationResult.ok(service_id)

    async def update_price_by_name(self, tenant_id: str, service_name: str, price: float) -> OperationResult:
        if price <= 0:
            return OperationResult.fail("Precio inválido")

        def _find() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("services")
                .select("id, name, price")
                .eq("tenant_id", tenant_id)
                .eq("is_active", True)
                .ilike("name", f"%{_escape_like(service_name)}%")
                .limit(5)
                .execute()
            )
            return rows_of(resp)

        matches = await self._read("Find service", _find)
        if not matches:
            return OperationResult.fail(f'No se encontró el servicio "{service_name}"')

        service = matches[0]
        if len(matches) > 1:
            exact = [m for m in matches if str(m.get("name", "")).lower() == service_name.lower()]
            if not exact:
                names = ", ".join(str(m.get("name")) for m in matches)
                return OperationResult.fail(f"Varios servicios coinciden: {names}. Sé más específico.")
            service = exact[0]

        def _update() -> None:
            (
                self._client.table("services")
                .update({"price": price, "updated_at": now_iso()})
                .eq("id", service["id"])
                .eq("tenant_id", tenant_id)
                .execute()
            )

        await self._write("Update price", _update)
        logger.info("Price updated tenant=%s service=%s -> %s", tenant_id, service.get("name"), price)
        return OperationResult.ok(
            service["id"],
            service_name=service.get("name"),
            previous_price=service.get("price"),
            new_price=price,
        )

    # Hours

    async def _main_branch_id(self, tenant_id: str) -> Optional[str]:
        def _select() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("branches")
                .select("id, is_main")
                .eq("tenant_id", tenant_id)
                .order("is_main", desc=True)
                .limit(1)
                .execute()
            )
            return rows_of(resp)

        rows = await self._read("Get main branch", _select)
        return rows[0]["id"] if rows else None

    async def get_hours(self, tenant_id: str) -> OperationResult:
        branch_id = await self._main_branch_id(tenant_id)
        if not branch_id:
            return OperationResult.fail("No se encontró sucursal")

        def _select() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("branch_hours")
                .select("day_of_week, open_time, close_time, is_closed")
                .eq("branch_id", branch_id)
                .order("day_of_week")
                .execute()
            )
            return rows_of(resp)

        rows = await self._read("Get hours", _select)
        return OperationResult.ok(branch_id, hours=rows)

    async def upsert_hours(
        self,
        tenant_id: str,
        day: str,
        open_time: Optional[str],
        close_time: Optional[str],
        is_closed: bool = False,
    ) -> OperationResult:
        day_number = DAY_NUMBERS.get((day or "").strip().lower())
        if day_number is None:
            return OperationResult.fail(f'Día "{day}" no válido')

        branch_id = await self._main_branch_id(tenant_id)
        if not branch_id:
            return OperationResult.fail("No se encontró sucursal")

        row = {
            "branch_id": branch_id,
            "day_of_week": day_number,
            "open_time": None if is_closed else open_time,
            "close_time": None if is_closed else close_time,
            "is_closed": bool(is_closed),
        }

        def _upsert() -> None:
            self._client.table("branch_hours").upsert(row, on_conflict="branch_id,day_of_week").execute()

        await self._write("Update hours", _upsert)
        logger.info("Hours updated tenant=%s day=%s closed=%s", tenant_id, day, is_closed)
        return OperationResult.ok(branch_id, day=day, open_time=open_time, close_time=close_time, is_closed=is_closed)

    # Staff

    async def get_staff(self, tenant_id: str) -> OperationResult:
        def _select() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("staff")
                .select("id, first_name, last_name, role")
                .eq("tenant_id", tenant_id)
                .eq("is_active", True)
                .order("first_name")
                .execute()
            )
            return rows_of(resp)

        rows = await self._read("Get staff", _select)
        return OperationResult.ok(staff=rows)

    async def upsert_staff(
        self, tenant_id: str, data: Dict[str, Any], staff_id: Optional[str] = None
    ) -> OperationResult:
        row = {
            "tenant_id": tenant_id,
            "first_name": data["first_name"],
            "last_name": data.get("last_name") or "",
            "role": data.get("role") or "staff",
            "email": data.get("email"),
            "phone": data.get("phone"),
            "is_active": True,
            "updated_at": now_iso(),
        }

        def _save() -> List[Dict[str, Any]]:
            table = self._client.table("staff")
            if staff_id:
                resp = table.update(row).eq("id", staff_id).eq("tenant_id", tenant_id).execute()
            else:
                resp = table.insert({**row, "created_at": now_iso()}).execute()
            return rows_of(resp)

        rows = await self._write("Upsert staff", _save)
        if not rows:
            return OperationResult.fail("No se encontró el empleado")
        return OperationResult.ok(rows[0].get("id"), first_name=row["first_name"])

    async def delete_staff(self, tenant_id: str, staff_id: str) -> OperationResult:
        def _update() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("staff")
                .update({"is_active": False, "updated_at": now_iso()})
                .eq("id", staff_id)
                .eq("tenant_id", tenant_id)
                .execute()
            )
            return rows_of(resp)

        rows = await self._write("Delete staff", _update)
        if not rows:
            return OperationResult.fail("No se encontró el empleado")
        return OperationResult.ok(staff_id)

    # Promotions

    async def get_active_promotions(self, tenant_id: str) -> OperationResult:
        now = now_iso()

        def _select() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("promotions")
                .select("id, name, discount_type, discount_value, start_date, end_date")
                .eq("tenant_id", tenant_id)
                .eq("is_active", True)
                .lte("start_date", now)
                .or_(f"end_date.is.null,end_date.gte.{now}")
                .order("created_at", desc=True)
                .execute()
            )
            return rows_of(resp)

        rows = await self._read("Get promotions", _select)
        return OperationResult.ok(promotions=rows)

    async def upsert_promotion(
        self, tenant_id: str, data: Dict[str, Any], promotion_id: Optional[str] = None
    ) -> OperationResult:
        row = {
            "tenant_id": tenant_id,
            "name": data["name"],
            "description": data.get("description"),
            "discount_type": data.get("discount_type") or "percentage",
            "discount_value": data["discount_value"],
            "start_date": data.get("start_date") or now_iso(),
            "end_date": data.get("end_date"),
            "is_active": True,
            "updated_at": now_iso(),
        }

        def _save() -> List[Dict[str, Any]]:
            table = self._client.table("promotions")
            if promotion_id:
                resp = table.update(row).eq("id", promotion_id).eq("tenant_id", tenant_id).execute()
            else:
                resp = table.insert({**row, "created_at": now_iso()}).execute()
            return rows_of(resp)

        rows = await self._write("Upsert promotion", _save)
        if not rows:
            return OperationResult.fail("No se encontró la promoción")
        return OperationResult.ok(rows[0].get("id"), name=row["name"])

    async def delete_promotion(self, tenant_id: str, promotion_id: str) -> OperationResult:
        def _update() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("promotions")
                .update({"is_active": False, "updated_at": now_iso()})
                .eq("id", promotion_id)
                .eq("tenant_id", tenant_id)
                .execute()
            )
            return rows_of(resp)

        rows = await self._write("Delete promotion", _update)
        if not rows:
            return OperationResult.fail("No se encontró la promoción")
        return OperationResult.ok(promotion_id)
