"""Session state for one admin channel turn.

``SessionState`` is immutable. Each orchestrator step and each handler
produces a ``StateUpdate`` and ``apply_update`` folds it into a new state.
Only the fields explicitly set on the update are applied, with per-field
semantics:

- ``extracted_entities``: merged key by key.
- ``executed_actions``: appended, then truncated to the last 50.
- ``conversation_history``: appended, then truncated to the last 20.
- everything else: replaced (``pending_action=None`` clears the slot).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from admin_channel.config.limits import (
    DEFAULT_MAX_ITERATIONS,
    MAX_EXECUTED_ACTIONS,
    MAX_HISTORY_ENTRIES,
)
from admin_channel.models.intents import AdminIntent


class Channel(str, Enum):
    TELEGRAM = "telegram"
    WHATSAPP = "whatsapp"


class Capabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    can_view_analytics: bool = False
    can_configure: bool = False
    can_receive_notifications: bool = False


class CallerContext(BaseModel):
    """Who is talking. Immutable for the turn."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    user_id: Optional[str] = None
    capabilities: Capabilities = Field(default_factory=Capabilities)
    channel: Channel = Channel.TELEGRAM
    locale: str = "es"
    timezone: str = "America/Mexico_City"
    business_name: Optional[str] = None
    vertical: str = "general"
    notifications_paused: bool = False


class InboundMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    message_id: Optional[str] = None


class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str
    content: str


class PendingActionType(str, Enum):
    CONFIRM_CREATE = "confirm_create"
    CONFIRM_UPDATE = "confirm_update"
    CONFIRM_DELETE = "confirm_delete"
    SELECT_OPTION = "select_option"


class EntityType(str, Enum):
    SERVICE = "service"
    PRICE = "price"
    HOURS = "hours"
    STAFF = "staff"
    PROMOTION = "promotion"


class ActionOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    value: str
    description: Optional[str] = None


class PendingAction(BaseModel):
    """A proposed mutation awaiting confirmation.

    ``expires_at`` may arrive as a raw string after a round trip through
    storage; it is parsed (and rejected if unparseable) on confirmation.
    ``options`` is only meaningful for ``SELECT_OPTION``; no flow proposes
    one yet, and they are cancellable but never executable.
    """

    model_config = ConfigDict(frozen=True)

    type: PendingActionType
    entity_type: EntityType
    data: Dict[str, Any] = Field(default_factory=dict)
    entity_id: Optional[str] = None
    options: List[ActionOption] = Field(default_factory=list)
    expires_at: Union[datetime, str, None] = None


class ExecutedAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    entity_type: str
    entity_id: Optional[str] = None
    success: bool
    error: Optional[str] = None
    result_data: Dict[str, Any] = Field(default_factory=dict)
    executed_at: datetime


class KeyboardButton(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    callback_data: str


Keyboard = List[List[KeyboardButton]]


class SessionState(BaseModel):
    model_config = ConfigDict(frozen=True)

    caller: CallerContext
    inbound: InboundMessage
    conversation_history: List[HistoryEntry] = Field(default_factory=list)

    resolved_intent: AdminIntent = AdminIntent.UNKNOWN
    intent_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    intent_source: str = "none"
    extracted_entities: Dict[str, Any] = Field(default_factory=dict)

    pending_action: Optional[PendingAction] = None
    executed_actions: List[ExecutedAction] = Field(default_factory=list)

    iteration_count: int = 0
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    should_end: bool = False
    loop_guard_tripped: bool = False
    handler_name: Optional[str] = None

    response: Optional[str] = None
    keyboard: Optional[Keyboard] = None
    error: Optional[str] = None

    @classmethod
    def start(
        cls,
        caller: CallerContext,
        text: str,
        *,
        message_id: Optional[str] = None,
        history: Optional[List[Any]] = None,
        pending_action: Optional[PendingAction] = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> "SessionState":
        """Build the fresh state for an inbound message."""

        entries = [_coerce_history(item) for item in (history or [])]
        return cls(
            caller=caller,
            inbound=InboundMessage(text=text or "", message_id=message_id),
            conversation_history=entries[-MAX_HISTORY_ENTRIES:],
            pending_action=pending_action,
            max_iterations=max_iterations,
        )


class StateUpdate(BaseModel):
    """Partial state returned by a step or handler."""

    conversation_history: List[HistoryEntry] = Field(default_factory=list)
    resolved_intent: Optional[AdminIntent] = None
    intent_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    intent_source: Optional[str] = None
    extracted_entities: Dict[str, Any] = Field(default_factory=dict)
    pending_action: Optional[PendingAction] = None
    executed_actions: List[ExecutedAction] = Field(default_factory=list)
    iteration_count: Optional[int] = None
    should_end: Optional[bool] = None
    loop_guard_tripped: Optional[bool] = None
    handler_name: Optional[str] = None
    response: Optional[str] = None
    keyboard: Optional[Keyboard] = None
    error: Optional[str] = None


def _coerce_history(item: Any) -> HistoryEntry:
    if isinstance(item, HistoryEntry):
        return item
    if isinstance(item, dict):
        return HistoryEntry(role=str(item.get("role") or "user"), content=str(item.get("content") or ""))
    role, content = item
    return HistoryEntry(role=str(role), content=str(content))


def apply_update(state: SessionState, update: StateUpdate) -> SessionState:
    """Fold ``update`` into ``state`` and return the new state."""

    changes: Dict[str, Any] = {}
    for name in update.model_fields_set:
        value = getattr(update, name)
        if name == "extracted_entities":
            merged = dict(state.extracted_entities)
            merged.update(value or {})
            changes[name] = merged
        elif name == "executed_actions":
            changes[name] = (list(state.executed_actions) + list(value or []))[-MAX_EXECUTED_ACTIONS:]
        elif name == "conversation_history":
            changes[name] = (list(state.conversation_history) + list(value or []))[-MAX_HISTORY_ENTRIES:]
        else:
            changes[name] = value

    if not changes:
        return state
    return state.model_copy(update=changes)
