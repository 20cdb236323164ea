"""Pending action lifecycle: propose, validate for confirmation, clear.

A session holds at most one pending action. Proposing a new one overwrites
the previous one (last write wins). Confirm, cancel and expiry rejection are
the only ways the slot is cleared.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from admin_channel.config.limits import PENDING_ACTION_TTL_SECONDS
from admin_channel.core.errors import InvalidExpiry, NoPendingAction, PendingActionExpired
from admin_channel.models.state import EntityType, PendingAction, PendingActionType


logger = logging.getLogger("admin_channel.pending")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def create_pending_action(
    *,
    action_type: PendingActionType,
    entity_type: EntityType,
    data: Dict[str, Any],
    now: datetime,
    entity_id: Optional[str] = None,
    ttl_seconds: int = PENDING_ACTION_TTL_SECONDS,
) -> PendingAction:
    """Build a pending action expiring ``ttl_seconds`` after ``now``."""

    return PendingAction(
        type=action_type,
        entity_type=entity_type,
        data=dict(data),
        entity_id=entity_id,
        expires_at=now + timedelta(seconds=ttl_seconds),
    )


def parse_expiry(value: Any) -> datetime:
    """Return ``value`` as an aware UTC datetime or raise ``InvalidExpiry``."""

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise InvalidExpiry(f"unparseable expires_at {value!r}") from exc
    else:
        raise InvalidExpiry(f"missing or invalid expires_at {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def ensure_confirmable(pending: Optional[PendingAction], now: datetime) -> PendingAction:
    """Check that ``pending`` may be executed at ``now``.

    Raises ``NoPendingAction``, ``InvalidExpiry`` or ``PendingActionExpired``.
    Valid iff now <= expires_at.
    """

    if pending is None:
        raise NoPendingAction("nothing to confirm")

    expires_at = parse_expiry(pending.expires_at)
    if now > expires_at:
        logger.info(
            "Pending %s/%s expired at %s",
            pending.type.value,
            pending.entity_type.value,
            expires_at.isoformat(),
        )
        raise PendingActionExpired(f"expired at {expires_at.isoformat()}")
    return pending
