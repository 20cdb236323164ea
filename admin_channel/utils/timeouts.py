"""Time-bounding of external calls.

Every read or mutation against an external collaborator goes through
``with_timeout`` so that a slow store or classifier never hangs a turn.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, TypeVar

from admin_channel.core.errors import ExternalOperationError


logger = logging.getLogger("admin_channel.timeouts")

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], seconds: float, label: str) -> T:
    """Await ``awaitable`` for at most ``seconds``.

    A timeout is converted to ``ExternalOperationError`` so callers handle it
    exactly like an explicit failure reported by the collaborator.
    """

    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as exc:
        logger.warning("%s timed out after %.1fs", label, seconds)
        raise ExternalOperationError(f"{label} timed out", timed_out=True) from exc
