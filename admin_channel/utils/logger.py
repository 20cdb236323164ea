"""Logging utilities for the admin channel.

This module centralizes logger configuration and the structured log helpers
used by the webhook and the per-turn service.
"""

import json
import logging
import uuid
from typing import Optional


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger, configuring a console handler once if none exists."""

    logger_name = name or "admin_channel"
    logger = logging.getLogger(logger_name)

    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

    return logger


def generate_request_id() -> str:
    """Generate a unique request identifier for correlating logs."""

    return str(uuid.uuid4())


def _format_channel_message(msg: str) -> str:
    return f"[ADMIN-CHANNEL] {msg}"


def _format_structured_message(
    message: str,
    tenant_id: Optional[str] = None,
    request_id: Optional[str] = None,
    extra: Optional[dict] = None,
) -> str:
    """Format a log message as a JSON string."""

    payload: dict = {"message": message}
    if tenant_id is not None:
        payload["tenant_id"] = tenant_id
    if request_id is not None:
        payload["request_id"] = request_id
    if extra:
        payload["extra"] = extra
    return json.dumps(payload, default=str, ensure_ascii=False)


def _log(
    level: int,
    msg: str,
    tenant_id: Optional[str],
    request_id: Optional[str],
    extra: dict,
) -> None:
    logger = get_logger("admin_channel.events")
    structured = _format_structured_message(
        _format_channel_message(msg),
        tenant_id=tenant_id,
        request_id=request_id,
        extra=extra or None,
    )
    logger.log(level, structured)


def log_info(
    msg: str,
    tenant_id: Optional[str] = None,
    request_id: Optional[str] = None,
    **extra: object,
) -> None:
    """Log an informational admin channel event."""

    _log(logging.INFO, msg, tenant_id, request_id, extra)


def log_warn(
    msg: str,
    tenant_id: Optional[str] = None,
    request_id: Optional[str] = None,
    **extra: object,
) -> None:
    """Log a warning admin channel event."""

    _log(logging.WARNING, msg, tenant_id, request_id, extra)


def log_error(
    msg: str,
    tenant_id: Optional[str] = None,
    request_id: Optional[str] = None,
    **extra: object,
) -> None:
    """Log an error admin channel event."""

    _log(logging.ERROR, msg, tenant_id, request_id, extra)
