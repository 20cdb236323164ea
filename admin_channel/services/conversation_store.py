"""Durable conversation context for the admin channel.

Each turn rebuilds its ``SessionState`` from what this store returns
(recent history, the outstanding pending action) and writes the outcome back
once the turn ends. The pending action is stored as JSON on the conversation
row, so ``expires_at`` comes back as a string.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from admin_channel.config.limits import MAX_HISTORY_ENTRIES
from admin_channel.core.errors import ExternalOperationError
from admin_channel.models.state import (
    CallerContext,
    Capabilities,
    Channel,
    HistoryEntry,
    PendingAction,
    SessionState,
)
from admin_channel.services.supabase_base import SupabaseRepository, now_iso, rows_of


logger = logging.getLogger("admin_channel.conversation_store")


class ConversationRef(BaseModel):
    conversation_id: str
    is_new: bool = False


class ConversationStore(Protocol):
    async def get_user_by_channel(self, channel: Channel, identifier: str) -> Optional[CallerContext]: ...

    async def get_or_create_conversation(self, user_id: str, channel: Channel) -> ConversationRef: ...

    async def load_recent_history(self, conversation_id: str, limit: int = MAX_HISTORY_ENTRIES) -> List[HistoryEntry]: ...

    async def load_pending_action(self, conversation_id: str) -> Optional[PendingAction]: ...

    async def persist(self, conversation_id: str, state: SessionState) -> None: ...


def caller_from_row(row: Dict[str, Any], channel: Channel) -> CallerContext:
    """Map a ``get_admin_channel_user`` row to a ``CallerContext``."""

    return CallerContext(
        tenant_id=str(row["tenant_id"]),
        user_id=str(row["user_id"]) if row.get("user_id") else None,
        capabilities=Capabilities(
            can_view_analytics=bool(row.get("can_view_analytics")),
            can_configure=bool(row.get("can_configure")),
            can_receive_notifications=bool(row.get("can_receive_notifications")),
        ),
        channel=channel,
        locale=row.get("locale") or "es",
        timezone=row.get("timezone") or "America/Mexico_City",
        business_name=row.get("tenant_name"),
        vertical=row.get("tenant_vertical") or "general",
        notifications_paused=bool(row.get("notifications_paused")),
    )


def pending_action_from_json(value: Any) -> Optional[PendingAction]:
    """Rebuild a stored pending action; malformed payloads are dropped."""

    if not value:
        return None
    try:
        return PendingAction.model_validate(value)
    except PydanticValidationError as exc:
        logger.warning("Discarding malformed pending action: %s", exc)
        return None


class SupabaseConversationStore(SupabaseRepository):
    """``ConversationStore`` over the ``admin_channel_*`` tables and RPCs."""

    async def get_user_by_channel(self, channel: Channel, identifier: str) -> Optional[CallerContext]:
        params = {
            "p_phone_normalized": identifier if channel is Channel.WHATSAPP else None,
            "p_telegram_user_id": identifier if channel is Channel.TELEGRAM else None,
        }

        def _rpc() -> List[Dict[str, Any]]:
            return rows_of(self._client.rpc("get_admin_channel_user", params).execute())

        rows = await self._read("Get user by channel", _rpc)
        if not rows:
            logger.info("No admin user linked for channel=%s", channel.value)
            return None

        row = rows[0]
        if row.get("status") not in (None, "active"):
            logger.info("Admin user %s is not active (status=%s)", row.get("user_id"), row.get("status"))
            return None
        return caller_from_row(row, channel)

    async def get_or_create_conversation(self, user_id: str, channel: Channel) -> ConversationRef:
        def _rpc() -> List[Dict[str, Any]]:
            return rows_of(
                self._client.rpc(
                    "get_or_create_admin_conversation",
                    {"p_user_id": user_id, "p_channel": channel.value},
                ).execute()
            )

        rows = await self._write("Get or create conversation", _rpc)
        if not rows:
            raise RuntimeError("get_or_create_admin_conversation returned no rows")
        ref = ConversationRef(conversation_id=str(rows[0]["conversation_id"]), is_new=bool(rows[0].get("is_new")))
        logger.info("Conversation %s: %s", "created" if ref.is_new else "retrieved", ref.conversation_id)
        return ref

    async def load_recent_history(self, conversation_id: str, limit: int = MAX_HISTORY_ENTRIES) -> List[HistoryEntry]:
        def _select() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("admin_channel_messages")
                .select("role, content, created_at")
                .eq("conversation_id", conversation_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
            rows = rows_of(resp)
            # Requested desc order; reverse so the caller sees ascending.
            rows.reverse()
            return rows

        rows = await self._read("Get recent messages", _select)
        return [
            HistoryEntry(role=row["role"], content=row["content"])
            for row in rows
            if row.get("role") and row.get("content") is not None
        ]

    async def load_pending_action(self, conversation_id: str) -> Optional[PendingAction]:
        def _select() -> List[Dict[str, Any]]:
            resp = (
                self._client.table("admin_channel_conversations")
                .select("pending_action")
                .eq("id", conversation_id)
                .limit(1)
                .execute()
            )
            return rows_of(resp)

        rows = await self._read("Get pending action", _select)
        if not rows:
            return None
        return pending_action_from_json(rows[0].get("pending_action"))

    async def _save_message(self, conversation_id: str, role: str, content: str, **options: Any) -> None:
        params = {
            "p_conversation_id": conversation_id,
            "p_role": role,
            "p_content": content,
            "p_detected_intent": options.get("detected_intent"),
            "p_intent_confidence": options.get("intent_confidence"),
            "p_extracted_data": options.get("extracted_data") or {},
            "p_actions_executed": options.get("actions_executed") or [],
            "p_input_tokens": 0,
            "p_output_tokens": 0,
            "p_channel_message_id": options.get("channel_message_id"),
        }

        def _rpc() -> None:
            self._client.rpc("save_admin_message", params).execute()

        await self._write(f"Save {role} message", _rpc)

    async def persist(self, conversation_id: str, state: SessionState) -> None:
        """Store the conversation context and the user and assistant messages.

        The context row goes first and every write is attempted: once an
        action has run, its cleared ``pending_action`` must land even if a
        message insert fails. The first failure is raised afterwards.
        """

        updates = {
            "current_intent": state.resolved_intent.value,
            "pending_action": state.pending_action.model_dump(mode="json") if state.pending_action else None,
            "updated_at": now_iso(),
        }

        def _update() -> None:
            self._client.table("admin_channel_conversations").update(updates).eq("id", conversation_id).execute()

        writes = [
            self._write("Update conversation context", _update),
            self._save_message(
                conversation_id,
                "user",
                state.inbound.text,
                channel_message_id=state.inbound.message_id,
            ),
            self._save_message(
                conversation_id,
                "assistant",
                state.response or "",
                detected_intent=state.resolved_intent.value,
                intent_confidence=state.intent_confidence,
                extracted_data=state.extracted_entities,
                actions_executed=[a.model_dump(mode="json") for a in state.executed_actions],
            ),
        ]

        failure: Optional[ExternalOperationError] = None
        for write in writes:
            try:
                await write
            except ExternalOperationError as exc:
                failure = failure or exc
        if failure is not None:
            raise failure
