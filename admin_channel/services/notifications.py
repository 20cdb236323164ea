"""Operator notifications: pause/resume preferences and fan-out delivery.

Delivery to many recipients runs through a bounded worker pool and reports
an aggregated ``FanOutResult``; a failed recipient is counted and its error
kept, never dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence

from admin_channel.config.limits import NOTIFICATION_MAX_WORKERS
from admin_channel.models.records import FanOutResult, OperationResult
from admin_channel.services.supabase_base import SupabaseRepository, now_iso, rows_of


logger = logging.getLogger("admin_channel.notifications")


class NotificationService(Protocol):
    async def set_paused(self, tenant_id: str, user_id: str, paused: bool) -> OperationResult: ...

    async def recipients(self, tenant_id: str) -> List[Dict[str, Any]]: ...

    async def deliver(self, tenant_id: str, recipient: Dict[str, Any], title: str, content: str) -> None:
        """Queue one notification; raises on failure."""


async def fan_out(
    recipients: Sequence[Dict[str, Any]],
    deliver: Callable[[Dict[str, Any]], Awaitable[None]],
    *,
    max_workers: int = NOTIFICATION_MAX_WORKERS,
) -> FanOutResult:
    """Run ``deliver`` for every recipient, at most ``max_workers`` at a time."""

    semaphore = asyncio.Semaphore(max(1, max_workers))

    async def _one(recipient: Dict[str, Any]) -> Optional[str]:
        async with semaphore:
            try:
                await deliver(recipient)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Delivery to %s failed: %r", recipient.get("id"), exc)
                return f"{recipient.get('id')}: {exc}"
        return None

    outcomes = await asyncio.gather(*(_one(r) for r in recipients))
    errors = [o for o in outcomes if o is not None]
    return FanOutResult(
        total=len(outcomes),
        succeeded=len(outcomes) - len(errors),
        failed=len(errors),
        errors=errors,
    )


async def broadcast(
    service: NotificationService,
    tenant_id: str,
    title: str,
    content: str,
    *,
    max_workers: int = NOTIFICATION_MAX_WORKERS,
) -> FanOutResult:
    """Send ``content`` to every notification-enabled operator of the tenant."""

    recipients = await service.recipients(tenant_id)
    result = await fan_out(
        recipients,
        lambda recipient: service.deliver(tenant_id, recipient, title, content),
        max_workers=max_workers,
    )
    logger.info(
        "Broadcast tenant=%s delivered %d/%d (failed=%d)",
        tenant_id,
        result.succeeded,
        result.total,
        result.failed,
    )
    return result


class SupabaseNotificationService(SupabaseRepository):
    """Preferences live on ``admin_channel_users``; deliveries are queued in
    ``admin_channel_notifications`` for the outbound sender."""

    async def set_paused(self, tenant_id: str, user_id: str, paused: bool) -> OperationResult:
        def _update() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("admin_channel_users")
                .update({"notifications_paused": paused, "updated_at": now_iso()})
                .eq("id", user_id)
                .eq("tenant_id", tenant_id)
                .execute()
            )
            return rows_of(resp)

        rows = await self._write("Update notification preference", _update)
        if not rows:
            return OperationResult.fail("No se encontró el usuario")
        return OperationResult.ok(user_id, notifications_paused=paused)

    async def recipients(self, tenant_id: str) -> List[Dict[str, Any]]:
        def _select() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("admin_channel_users")
                .select("id, preferred_channel, notifications_paused")
                .eq("tenant_id", tenant_id)
                .eq("status", "active")
                .eq("can_receive_notifications", True)
                .execute()
            )
            return rows_of(resp)

        rows = await self._read("Get notification users", _select)
        return [r for r in rows if not r.get("notifications_paused")]

    async def deliver(self, tenant_id: str, recipient: Dict[str, Any], title: str, content: str) -> None:
        payload = {
            "tenant_id": tenant_id,
            "user_id": recipient.get("id"),
            "notification_type": "test",
            "title": title,
            "content": content,
            "channel": recipient.get("preferred_channel") or "both",
            "priority": "normal",
            "status": "pending",
            "created_at": now_iso(),
            "updated_at": now_iso(),
        }

        def _insert() -> None:
            self._client.table("admin_channel_notifications").insert(payload).execute()

        await self._write("Create notification", _insert)
