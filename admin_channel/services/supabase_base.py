"""Shared Supabase plumbing for the admin channel stores.

The Supabase Python client is synchronous, so every query runs in the
default executor. Reads are retried up to 3 times with exponential backoff;
mutations run exactly once. Both are bounded by the DB timeout.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, TypeVar

from supabase import Client, create_client

from admin_channel.config.limits import DB_TIMEOUT_SECONDS, READ_ATTEMPTS, READ_BACKOFF_SECONDS
from admin_channel.config.settings import AdminChannelSettings
from admin_channel.core.errors import ExternalOperationError
from admin_channel.utils.timeouts import with_timeout


logger = logging.getLogger("admin_channel.supabase")

T = TypeVar("T")

_SUPABASE_CLIENT: Optional[Client] = None


def get_supabase_client(settings: AdminChannelSettings) -> Client:
    """Return a cached Supabase client built from ``settings``.

    Raises ``RuntimeError`` when the URL or key is not configured.
    """

    global _SUPABASE_CLIENT

    if _SUPABASE_CLIENT is not None:
        return _SUPABASE_CLIENT

    if not settings.supabase_url or not settings.supabase_key:
        raise RuntimeError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY/ANON_KEY are not fully configured"
        )

    _SUPABASE_CLIENT = create_client(settings.supabase_url, settings.supabase_key)
    return _SUPABASE_CLIENT


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def rows_of(resp: Any) -> List[Dict[str, Any]]:
    return getattr(resp, "data", None) or []


class SupabaseRepository:
    """Base class holding a client and the executor/timeout helpers."""

    def __init__(self, client: Client, *, timeout_seconds: float = DB_TIMEOUT_SECONDS) -> None:
        self._client = client
        self._timeout = timeout_seconds

    async def _write(self, label: str, fn: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await with_timeout(loop.run_in_executor(None, fn), self._timeout, label)
        except ExternalOperationError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("%s failed: %r", label, exc)
            raise ExternalOperationError(f"{label} failed: {exc}") from exc

    async def _read(self, label: str, fn: Callable[[], T]) -> T:
        last_exc: Optional[ExternalOperationError] = None
        for attempt in range(READ_ATTEMPTS):
            try:
                return await self._write(label, fn)
            except ExternalOperationError as exc:
                last_exc = exc
                if attempt < READ_ATTEMPTS - 1:
                    await asyncio.sleep(READ_BACKOFF_SECONDS * (2 ** attempt))
        logger.error("%s failed after %d attempts", label, READ_ATTEMPTS)
        raise last_exc
