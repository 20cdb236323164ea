"""Read-only business metrics for the analytics and operations handlers.

Aggregations happen in Python over the raw rows; every query goes through
the retrying, time-bounded read helper of ``SupabaseRepository``.
"""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Literal, Optional, Protocol, Tuple

from pydantic import BaseModel

from admin_channel.services.supabase_base import SupabaseRepository, rows_of


logger = logging.getLogger("admin_channel.analytics")

Period = Literal["daily", "weekly", "monthly"]

HOT_LEAD_SCORE = 80
WARM_LEAD_SCORE = 50

APPOINTMENT_VERTICALS = frozenset({"dental", "clinic", "beauty", "veterinary"})
ORDER_VERTICALS = frozenset({"restaurant"})


class SalesData(BaseModel):
    total: float = 0
    count: int = 0

    @property
    def average_ticket(self) -> float:
        return self.total / self.count if self.count else 0.0


class LeadsData(BaseModel):
    total: int = 0
    hot: int = 0
    warm: int = 0
    cold: int = 0
    converted: int = 0

    @property
    def conversion_rate(self) -> int:
        return round(self.converted * 100 / self.total) if self.total else 0


class AIData(BaseModel):
    conversations: int = 0
    messages: int = 0
    resolved: int = 0
    escalated: int = 0

    @property
    def resolution_rate(self) -> int:
        return round(self.resolved * 100 / self.conversations) if self.conversations else 0

    @property
    def escalation_rate(self) -> int:
        return round(self.escalated * 100 / self.conversations) if self.conversations else 0


class OperationsData(BaseModel):
    appointments: Optional[int] = None
    orders: Optional[int] = None


class InventoryAlert(BaseModel):
    name: str
    current: float = 0
    minimum: float = 0

    @property
    def out_of_stock(self) -> bool:
        return self.current <= 0


class AnalyticsSource(Protocol):
    async def sales(self, tenant_id: str, start: datetime, end: datetime) -> SalesData: ...

    async def leads(self, tenant_id: str, start: datetime, end: datetime) -> LeadsData: ...

    async def ai_activity(self, tenant_id: str, start: datetime, end: datetime) -> AIData: ...

    async def operations(
        self, tenant_id: str, start: datetime, end: datetime, vertical: str
    ) -> OperationsData: ...

    async def low_stock(self, tenant_id: str) -> List[InventoryAlert]: ...

    async def pending_orders(self, tenant_id: str) -> List[Dict[str, Any]]: ...

    async def escalations(self, tenant_id: str) -> List[Dict[str, Any]]: ...

    async def appointments_between(
        self, tenant_id: str, start: datetime, end: datetime
    ) -> List[Dict[str, Any]]: ...

    async def pending_leads(self, tenant_id: str) -> List[Dict[str, Any]]: ...


def _months_back(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 - months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def period_bounds(period: Period, now: datetime) -> Tuple[datetime, datetime]:
    """Start and end of the reporting window ending at ``now``."""

    if period == "daily":
        return now.replace(hour=0, minute=0, second=0, microsecond=0), now
    if period == "weekly":
        return now - timedelta(days=7), now
    return _months_back(now, 1), now


def previous_period_bounds(period: Period, now: datetime) -> Tuple[datetime, datetime]:
    """The window immediately before ``period_bounds(period, now)``."""

    if period == "daily":
        end = now.replace(hour=0, minute=0, second=0, microsecond=0) - timedelta(microseconds=1)
        return end.replace(hour=0, minute=0, second=0, microsecond=0), end
    if period == "weekly":
        end = now - timedelta(days=7)
        return end - timedelta(days=7), end
    end = _months_back(now, 1)
    return _months_back(end, 1), end


def revenue_change(current: float, previous: float) -> int:
    """Percent change vs the previous period; 0 when there is no baseline."""

    if previous <= 0:
        return 0
    return round((current - previous) * 100 / previous)


class SupabaseAnalyticsSource(SupabaseRepository):
    """``AnalyticsSource`` over the tenant's operational tables."""

    async def sales(self, tenant_id: str, start: datetime, end: datetime) -> SalesData:
        def _select() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("quotes")
                .select("id, total_amount, status")
                .eq("tenant_id", tenant_id)
                .eq("status", "paid")
                .gte("created_at", start.isoformat())
                .lte("created_at", end.isoformat())
                .execute()
            )
            return rows_of(resp)

        rows = await self._read("Sales query", _select)
        total = sum(float(r.get("total_amount") or 0) for r in rows)
        return SalesData(total=total, count=len(rows))

    async def leads(self, tenant_id: str, start: datetime, end: datetime) -> LeadsData:
        def _select() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("leads")
                .select("id, score, status, created_at")
                .eq("tenant_id", tenant_id)
                .gte("created_at", start.isoformat())
                .lte("created_at", end.isoformat())
                .execute()
            )
            return rows_of(resp)

        rows = await self._read("Leads query", _select)
        scores = [int(r.get("score") or 0) for r in rows]
        return LeadsData(
            total=len(rows),
            hot=sum(1 for s in scores if s >= HOT_LEAD_SCORE),
            warm=sum(1 for s in scores if WARM_LEAD_SCORE <= s < HOT_LEAD_SCORE),
            cold=sum(1 for s in scores if s < WARM_LEAD_SCORE),
            converted=sum(1 for r in rows if r.get("status") == "converted"),
        )

    async def ai_activity(self, tenant_id: str, start: datetime, end: datetime) -> AIData:
        def _conversations() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("conversations")
                .select("id, status, channel, created_at")
                .eq("tenant_id", tenant_id)
                .gte("created_at", start.isoformat())
                .lte("created_at", end.isoformat())
                .execute()
            )
            return rows_of(resp)

        rows = await self._read("AI conversations query", _conversations)
        ids = [r["id"] for r in rows if r.get("id")]

        messages = 0
        if ids:
            def _count() -> int:
                resp = self._client.table("messages").select("id", count="exact").in_("conversation_id", ids).execute()
                return int(getattr(resp, "count", None) or 0)

            messages = await self._read("AI messages count", _count)

        return AIData(
            conversations=len(rows),
            messages=messages,
            resolved=sum(1 for r in rows if r.get("status") == "resolved"),
            escalated=sum(1 for r in rows if r.get("status") == "escalated"),
        )

    async def _count_between(self, table: str, column: str, tenant_id: str, start: datetime, end: datetime) -> int:
        def _count() -> int:
            resp = (
                self._client.table(table)
                .select("id", count="exact")
                .eq("tenant_id", tenant_id)
                .gte(column, start.isoformat())
                .lte(column, end.isoformat())
                .execute()
            )
            return int(getattr(resp, "count", None) or 0)

        return await self._read(f"Count {table}", _count)

    async def operations(
        self, tenant_id: str, start: datetime, end: datetime, vertical: str
    ) -> OperationsData:
        data = OperationsData()
        if vertical in APPOINTMENT_VERTICALS:
            data.appointments = await self._count_between("appointments", "scheduled_at", tenant_id, start, end)
        if vertical in ORDER_VERTICALS:
            data.orders = await self._count_between("orders", "created_at", tenant_id, start, end)
        return data

    async def low_stock(self, tenant_id: str) -> List[InventoryAlert]:
        def _select() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("inventory_items")
                .select("id, name, current_stock, min_stock, status")
                .eq("tenant_id", tenant_id)
                .execute()
            )
            return rows_of(resp)

        rows = await self._read("Inventory query", _select)
        alerts = []
        for row in rows:
            current = float(row.get("current_stock") or 0)
            minimum = float(row.get("min_stock") or 0)
            if current <= minimum:
                alerts.append(InventoryAlert(name=row.get("name") or "Sin nombre", current=current, minimum=minimum))
        return alerts

    async def pending_orders(self, tenant_id: str) -> List[Dict[str, Any]]:
        def _select() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("orders")
                .select("id, order_number, status, total, created_at")
                .eq("tenant_id", tenant_id)
                .in_("status", ["pending", "preparing"])
                .order("created_at")
                .limit(20)
                .execute()
            )
            return rows_of(resp)

        return await self._read("Pending orders query", _select)

    async def escalations(self, tenant_id: str) -> List[Dict[str, Any]]:
        def _select() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("conversations")
                .select("id, channel, status, updated_at")
                .eq("tenant_id", tenant_id)
                .eq("status", "escalated")
                .order("updated_at", desc=True)
                .limit(20)
                .execute()
            )
            return rows_of(resp)

        return await self._read("Escalations query", _select)

    async def appointments_between(
        self, tenant_id: str, start: datetime, end: datetime
    ) -> List[Dict[str, Any]]:
        def _select() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("appointments")
                .select("id, scheduled_at, status, service_name, patient_name")
                .eq("tenant_id", tenant_id)
                .gte("scheduled_at", start.isoformat())
                .lte("scheduled_at", end.isoformat())
                .order("scheduled_at")
                .execute()
            )
            return rows_of(resp)

        return await self._read("Appointments query", _select)

    async def pending_leads(self, tenant_id: str) -> List[Dict[str, Any]]:
        def _select() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("leads")
                .select("id, name, score, status, created_at")
                .eq("tenant_id", tenant_id)
                .eq("status", "new")
                .order("score", desc=True)
                .limit(20)
                .execute()
            )
            return rows_of(resp)

        return await self._read("Pending leads query", _select)
