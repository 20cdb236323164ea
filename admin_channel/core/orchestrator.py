"""Per-turn state machine for the admin channel.

A turn walks ``intent_resolution -> permission_check -> dispatch ->
handler_execution`` and ends. Every step increments ``iteration_count``
first; reaching ``max_iterations`` ends the turn immediately with
``loop_guard_tripped`` set. No step raises: failures become state.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, Mapping, Optional, Tuple

from admin_channel.agents.fast_matcher import IntentMatch, match_fast_intent
from admin_channel.core.classifier import FallbackClassifier, build_system_prompt
from admin_channel.core.context import GENERIC_FAILURE_MESSAGE, Handler, HandlerContext
from admin_channel.core.errors import AdminChannelError, ClassificationError, LoopGuardTripped, PermissionDenied
from admin_channel.core.handlers import HANDLERS
from admin_channel.core.permissions import DENIAL_MESSAGE, is_allowed
from admin_channel.core.router import HandlerName, route
from admin_channel.models.intents import AdminIntent
from admin_channel.models.state import CallerContext, SessionState, StateUpdate, apply_update


logger = logging.getLogger("admin_channel.orchestrator")

DEFAULT_FALLBACK_RESPONSE = "🤔 No pude procesar tu mensaje. Escribe /ayuda para ver las opciones."


class Step(str, Enum):
    START = "start"
    INTENT_RESOLUTION = "intent_resolution"
    PERMISSION_CHECK = "permission_check"
    DISPATCH = "dispatch"
    HANDLER_EXECUTION = "handler_execution"
    END = "end"


Transition = Tuple[Step, SessionState]


class AdminChannelOrchestrator:
    """Runs one inbound message through the state machine.

    Built once at process start with its collaborators; holds no per-session
    state, so one instance serves every turn.
    """

    def __init__(
        self,
        classifier: FallbackClassifier,
        context: HandlerContext,
        *,
        handlers: Optional[Mapping[HandlerName, Handler]] = None,
        fast_matcher: Callable[[str], Optional[IntentMatch]] = match_fast_intent,
        prompt_builder: Callable[[CallerContext], str] = build_system_prompt,
    ) -> None:
        self._classifier = classifier
        self._context = context
        self._handlers = dict(handlers if handlers is not None else HANDLERS)
        self._fast_matcher = fast_matcher
        self._prompt_builder = prompt_builder
        self._steps: Dict[Step, Callable[[SessionState], Awaitable[Transition]]] = {
            Step.START: self._start,
            Step.INTENT_RESOLUTION: self._resolve_intent,
            Step.PERMISSION_CHECK: self._check_permission,
            Step.DISPATCH: self._dispatch,
            Step.HANDLER_EXECUTION: self._execute_handler,
        }

    @property
    def context(self) -> HandlerContext:
        return self._context

    async def run_turn(self, state: SessionState) -> SessionState:
        """Process ``state.inbound`` and return the final state of the turn."""

        step = Step.START
        while step is not Step.END:
            state = apply_update(state, StateUpdate(iteration_count=state.iteration_count + 1))
            if state.iteration_count >= state.max_iterations:
                state = self._trip_loop_guard(state, step)
                break
            step, state = await self._steps[step](state)

        return self._finish(state)

    # Steps

    async def _start(self, state: SessionState) -> Transition:
        return Step.INTENT_RESOLUTION, state

    async def _resolve_intent(self, state: SessionState) -> Transition:
        text = state.inbound.text
        tenant_id = state.caller.tenant_id

        match = self._fast_matcher(text)
        if match is not None:
            logger.info("Intent %s via fast match tenant=%s", match.intent.value, tenant_id)
            return Step.PERMISSION_CHECK, apply_update(state, _resolution(match, "fast"))

        try:
            match = await self._classifier.classify(
                self._prompt_builder(state.caller),
                state.conversation_history,
                text,
            )
        except AdminChannelError as exc:
            return Step.DISPATCH, self._classification_failed(state, exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Classifier adapter raised unexpectedly")
            return Step.DISPATCH, self._classification_failed(state, ClassificationError(repr(exc)))

        logger.info(
            "Intent %s via classifier (confidence=%.2f) tenant=%s",
            match.intent.value,
            match.confidence,
            tenant_id,
        )
        return Step.PERMISSION_CHECK, apply_update(state, _resolution(match, "classifier"))

    async def _check_permission(self, state: SessionState) -> Transition:
        intent = state.resolved_intent
        if is_allowed(intent, state.caller.capabilities):
            return Step.DISPATCH, state

        denial = PermissionDenied(f"intent {intent.value} not allowed for user {state.caller.user_id}")
        logger.warning("Permission denied tenant=%s: %s", state.caller.tenant_id, denial)
        return Step.END, apply_update(
            state,
            StateUpdate(response=DENIAL_MESSAGE, keyboard=None, should_end=True),
        )

    async def _dispatch(self, state: SessionState) -> Transition:
        # An earlier failure always lands on help, whatever the table says.
        target = HandlerName.HELP if state.error else route(state.resolved_intent)
        return Step.HANDLER_EXECUTION, apply_update(state, StateUpdate(handler_name=target.value))

    async def _execute_handler(self, state: SessionState) -> Transition:
        name = HandlerName(state.handler_name) if state.handler_name else HandlerName.HELP
        handler = self._handlers.get(name, self._handlers[HandlerName.HELP])

        try:
            update = await handler(state, self._context)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Handler %s raised past its boundary", name.value)
            update = StateUpdate(
                response=GENERIC_FAILURE_MESSAGE,
                error=f"internal_error: {exc!r}",
                should_end=True,
            )

        if update.error:
            logger.error("Handler %s reported %s tenant=%s", name.value, update.error, state.caller.tenant_id)

        state = apply_update(state, update)
        if state.should_end:
            return Step.END, state
        return Step.INTENT_RESOLUTION, state

    # Terminal handling

    def _classification_failed(self, state: SessionState, exc: AdminChannelError) -> SessionState:
        logger.warning("Classification failed tenant=%s: %s", state.caller.tenant_id, exc)
        return apply_update(
            state,
            StateUpdate(
                resolved_intent=AdminIntent.UNKNOWN,
                intent_confidence=0.0,
                intent_source="classifier",
                error=exc.code,
            ),
        )

    def _trip_loop_guard(self, state: SessionState, step: Step) -> SessionState:
        marker = LoopGuardTripped(f"iteration {state.iteration_count} of {state.max_iterations} at {step.value}")
        logger.warning("Loop guard tripped tenant=%s: %s", state.caller.tenant_id, marker)
        return apply_update(state, StateUpdate(loop_guard_tripped=True, should_end=True))

    def _finish(self, state: SessionState) -> SessionState:
        update = StateUpdate(should_end=True)
        if not state.response:
            update = StateUpdate(response=DEFAULT_FALLBACK_RESPONSE, should_end=True)
        return apply_update(state, update)


def _resolution(match: IntentMatch, source: str) -> StateUpdate:
    return StateUpdate(
        resolved_intent=match.intent,
        intent_confidence=match.confidence,
        intent_source=source,
        extracted_entities=match.entities,
    )
