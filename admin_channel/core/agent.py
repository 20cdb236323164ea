"""Per-turn service for the admin channel.

``process_admin_message`` is the single entry point used by the channel
integrations: it loads the conversation context, runs the orchestrator and
writes the outcome back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel

from admin_channel.config.limits import MAX_HISTORY_ENTRIES
from admin_channel.config.settings import AdminChannelSettings, get_settings
from admin_channel.core.classifier import FallbackClassifier, LLMConfig, OpenAIClassifierService
from admin_channel.core.context import HandlerContext
from admin_channel.core.errors import ExternalOperationError, ValidationError
from admin_channel.core.orchestrator import AdminChannelOrchestrator
from admin_channel.models.state import CallerContext, Keyboard, SessionState
from admin_channel.services.analytics import SupabaseAnalyticsSource
from admin_channel.services.business_store import SupabaseBusinessStore
from admin_channel.services.conversation_store import ConversationStore, SupabaseConversationStore
from admin_channel.services.notifications import SupabaseNotificationService
from admin_channel.services.supabase_base import get_supabase_client
from admin_channel.utils.logger import log_error, log_info, log_warn
from admin_channel.utils.timeouts import with_timeout


logger = logging.getLogger("admin_channel.agent")

UNAVAILABLE_MESSAGE = "⏳ No pude cargar tu conversación en este momento. Intenta de nuevo en unos minutos."


class TurnResult(BaseModel):
    """What the channel integration sends back to the operator."""

    text: str
    keyboard: Optional[Keyboard] = None
    state: Optional[SessionState] = None


@dataclass(frozen=True)
class AdminChannelRuntime:
    """The collaborators wired at process start."""

    orchestrator: AdminChannelOrchestrator
    conversations: ConversationStore
    settings: AdminChannelSettings


async def process_admin_message(
    runtime: AdminChannelRuntime,
    caller: CallerContext,
    text: str,
    *,
    message_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> TurnResult:
    """Run one turn for ``caller`` and persist it.

    Loading failures answer with a "try again" message without running the
    orchestrator. A persistence failure is logged; the reply is still sent.
    """

    settings = runtime.settings
    store = runtime.conversations
    timeout = settings.db_timeout_seconds

    if not caller.user_id:
        raise ValidationError("caller has no user id")

    try:
        ref = await with_timeout(
            store.get_or_create_conversation(caller.user_id, caller.channel),
            timeout,
            "Get or create conversation",
        )
        history = await with_timeout(
            store.load_recent_history(ref.conversation_id, MAX_HISTORY_ENTRIES),
            timeout,
            "Load history",
        )
        pending = await with_timeout(
            store.load_pending_action(ref.conversation_id),
            timeout,
            "Load pending action",
        )
    except (ExternalOperationError, RuntimeError) as exc:
        log_error(
            "Failed to load conversation context",
            tenant_id=caller.tenant_id,
            request_id=request_id,
            error=repr(exc),
        )
        return TurnResult(text=UNAVAILABLE_MESSAGE)

    state = SessionState.start(
        caller,
        text,
        message_id=message_id,
        history=history,
        pending_action=pending,
        max_iterations=settings.max_iterations,
    )

    final = await runtime.orchestrator.run_turn(state)

    log_info(
        "Admin turn completed",
        tenant_id=caller.tenant_id,
        request_id=request_id,
        intent=final.resolved_intent.value,
        source=final.intent_source,
        handler=final.handler_name,
        iterations=final.iteration_count,
        has_pending=final.pending_action is not None,
    )
    if final.loop_guard_tripped:
        log_warn("Turn ended by loop guard", tenant_id=caller.tenant_id, request_id=request_id)

    try:
        await store.persist(ref.conversation_id, final)
    except Exception as exc:  # noqa: BLE001
        log_error(
            "Failed to persist admin turn",
            tenant_id=caller.tenant_id,
            request_id=request_id,
            conversation_id=ref.conversation_id,
            error=repr(exc),
        )

    return TurnResult(text=final.response or "", keyboard=final.keyboard, state=final)


def build_runtime(settings: AdminChannelSettings) -> AdminChannelRuntime:
    """Wire the Supabase stores and the OpenAI classifier from ``settings``."""

    client = get_supabase_client(settings)
    timeout = settings.db_timeout_seconds

    context = HandlerContext(
        store=SupabaseBusinessStore(client, timeout_seconds=timeout),
        analytics=SupabaseAnalyticsSource(client, timeout_seconds=timeout),
        notifications=SupabaseNotificationService(client, timeout_seconds=timeout),
        settings=settings,
    )
    classifier = FallbackClassifier(
        OpenAIClassifierService(
            settings.openai_api_key,
            LLMConfig(model=settings.classifier_model, request_timeout=settings.classifier_timeout_seconds),
        ),
        timeout_seconds=settings.classifier_timeout_seconds,
    )
    logger.info("Admin channel runtime built (model=%s)", settings.classifier_model)
    return AdminChannelRuntime(
        orchestrator=AdminChannelOrchestrator(classifier, context),
        conversations=SupabaseConversationStore(client, timeout_seconds=timeout),
        settings=settings,
    )


@lru_cache(maxsize=1)
def get_runtime() -> AdminChannelRuntime:
    return build_runtime(get_settings())
