"""Per-operator rate limiting for inbound admin messages.

Fixed-window limiter held in memory. Sufficient for a single-process
deployment; multi-process deployments need a shared backend.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Tuple

from admin_channel.config.limits import MAX_MESSAGES_PER_HOUR, RATE_WINDOW_SECONDS


# key -> (window_start_timestamp, count)
_rate_state: Dict[str, Tuple[float, int]] = {}


async def check_rate_limit(
    key: str,
    *,
    limit: int = MAX_MESSAGES_PER_HOUR,
    window_seconds: int = RATE_WINDOW_SECONDS,
    clock: Callable[[], float] = time.time,
) -> bool:
    """Return True if ``key`` is within the limit, False if rate-limited."""

    now = clock()
    window_start, count = _rate_state.get(key, (now, 0))

    if now - window_start >= window_seconds:
        window_start = now
        count = 0

    if count >= limit:
        _rate_state[key] = (window_start, count)
        return False

    count += 1
    _rate_state[key] = (window_start, count)
    return True


def reset_rate_limits() -> None:
    _rate_state.clear()
