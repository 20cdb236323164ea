import asyncio
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from admin_channel.core.classifier import FallbackClassifier
from admin_channel.core.context import HandlerContext
from admin_channel.core.flows.confirm_flow import EXPIRED_MESSAGE
from admin_channel.core.orchestrator import DEFAULT_FALLBACK_RESPONSE, AdminChannelOrchestrator
from admin_channel.core.permissions import DENIAL_MESSAGE
from admin_channel.core.router import HandlerName
from admin_channel.models.intents import AdminIntent
from admin_channel.models.records import OperationResult
from admin_channel.models.state import (
    CallerContext,
    Capabilities,
    PendingActionType,
    SessionState,
    StateUpdate,
)


NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def _caller(**capabilities) -> CallerContext:
    return CallerContext(
        tenant_id="t-1",
        user_id="u-1",
        capabilities=Capabilities(**capabilities),
        business_name="Clínica Sonrisa",
        vertical="clinic",
    )


def _orchestrator(reply='{"intent": "unknown"}', *, store=None, analytics=None, clock=lambda: NOW, handlers=None):
    service = AsyncMock()
    service.classify = AsyncMock(return_value=reply)
    context = HandlerContext(store=store if store is not None else AsyncMock(), analytics=analytics, clock=clock)
    return AdminChannelOrchestrator(FallbackClassifier(service), context, handlers=handlers), service


def _counting_handlers():
    return {name: AsyncMock(return_value=StateUpdate(response=name.value, should_end=True)) for name in HandlerName}


class TestOrchestratorScenarios(unittest.TestCase):
    def test_help_command_resolves_fast(self):
        async def run():
            orchestrator, service = _orchestrator()
            final = await orchestrator.run_turn(SessionState.start(_caller(), "/ayuda"))

            self.assertEqual(final.resolved_intent, AdminIntent.HELP)
            self.assertEqual(final.intent_confidence, 1.0)
            self.assertEqual(final.intent_source, "fast")
            self.assertEqual(final.handler_name, HandlerName.HELP.value)
            self.assertTrue(final.response)
            self.assertTrue(final.should_end)
            self.assertFalse(final.loop_guard_tripped)
            service.classify.assert_not_awaited()

        asyncio.run(run())

    def test_propose_confirm_and_expire_service_creation(self):
        async def run():
            store = AsyncMock()
            store.upsert_service = AsyncMock(return_value=OperationResult.ok("svc-1"))
            reply = '{"intent": "config_services", "confidence": 0.93, "entities": {"serviceName": "Limpieza Dental"}}'
            orchestrator, service = _orchestrator(reply, store=store)
            caller = _caller(can_configure=True)

            proposed = await orchestrator.run_turn(
                SessionState.start(caller, "agregar servicio Limpieza Dental $500")
            )

            pending = proposed.pending_action
            self.assertIsNotNone(pending)
            self.assertEqual(pending.type, PendingActionType.CONFIRM_CREATE)
            self.assertEqual(pending.data["price"], 500)
            self.assertEqual(pending.data["name"], "Limpieza Dental")
            self.assertGreater(pending.expires_at, NOW)
            self.assertIn("Confirma", proposed.response)
            self.assertEqual(proposed.keyboard[0][0].callback_data, "/confirmar")
            self.assertTrue(proposed.should_end)
            self.assertEqual(proposed.intent_source, "classifier")
            store.upsert_service.assert_not_awaited()

            # Within the TTL
            confirmed = await orchestrator.run_turn(SessionState.start(caller, "sí", pending_action=pending))

            store.upsert_service.assert_awaited_once()
            args = store.upsert_service.await_args.args
            self.assertEqual(args[0], "t-1")
            self.assertEqual(args[1]["name"], "Limpieza Dental")
            self.assertEqual(args[1]["price"], 500.0)
            self.assertIsNone(confirmed.pending_action)
            self.assertEqual(len(confirmed.executed_actions), 1)
            self.assertTrue(confirmed.executed_actions[0].success)
            self.assertEqual(service.classify.await_count, 1)

            # After the TTL
            store.upsert_service.reset_mock()
            late, _ = _orchestrator(store=store, clock=lambda: NOW + timedelta(minutes=6))
            expired = await late.run_turn(SessionState.start(caller, "sí", pending_action=pending))

            store.upsert_service.assert_not_awaited()
            self.assertEqual(expired.response, EXPIRED_MESSAGE)
            self.assertIsNone(expired.pending_action)
            self.assertEqual(expired.executed_actions, [])

        asyncio.run(run())

    def test_price_change_without_configure_capability_is_denied(self):
        async def run():
            store = AsyncMock()
            orchestrator, _ = _orchestrator('{"intent": "config_prices", "confidence": 0.95}', store=store)

            final = await orchestrator.run_turn(
                SessionState.start(_caller(can_view_analytics=True), "cambiar precio de Consulta a $600")
            )

            self.assertEqual(final.response, DENIAL_MESSAGE)
            self.assertTrue(final.should_end)
            self.assertIsNone(final.handler_name)
            self.assertIsNone(final.pending_action)
            self.assertEqual(store.mock_calls, [])

        asyncio.run(run())

    def test_analytics_denied_without_view_capability(self):
        async def run():
            handlers = _counting_handlers()
            analytics = AsyncMock()
            orchestrator, _ = _orchestrator(analytics=analytics, handlers=handlers)

            for text in ("/resumen", "/ventas", "/inventario"):
                final = await orchestrator.run_turn(SessionState.start(_caller(can_configure=True), text))
                self.assertEqual(final.response, DENIAL_MESSAGE)

            for handler in handlers.values():
                handler.assert_not_awaited()
            self.assertEqual(analytics.mock_calls, [])

        asyncio.run(run())


class TestOrchestratorRobustness(unittest.TestCase):
    def test_classifier_failure_routes_to_help(self):
        async def run():
            orchestrator, service = _orchestrator("lo siento, no sé")
            final = await orchestrator.run_turn(SessionState.start(_caller(), "qué onda con lo de ayer"))

            service.classify.assert_awaited_once()
            self.assertEqual(final.resolved_intent, AdminIntent.UNKNOWN)
            self.assertEqual(final.intent_confidence, 0.0)
            self.assertTrue(final.error.startswith("classification_error"))
            self.assertEqual(final.handler_name, HandlerName.HELP.value)
            self.assertTrue(final.response.startswith("🤔 No entendí"))
            self.assertTrue(final.should_end)

        asyncio.run(run())

    def test_classifier_failure_skips_permission_check(self):
        async def run():
            handlers = _counting_handlers()
            orchestrator, _ = _orchestrator("{broken", handlers=handlers)
            final = await orchestrator.run_turn(SessionState.start(_caller(), "?"))

            handlers[HandlerName.HELP].assert_awaited_once()
            self.assertEqual(final.response, "help")

        asyncio.run(run())

    def test_loop_guard_ends_turn_without_routing(self):
        async def run():
            handlers = _counting_handlers()
            orchestrator, service = _orchestrator(handlers=handlers)
            state = SessionState.start(_caller(can_view_analytics=True), "/resumen", max_iterations=10)
            state = state.model_copy(update={"iteration_count": 9})

            final = await orchestrator.run_turn(state)

            self.assertTrue(final.should_end)
            self.assertTrue(final.loop_guard_tripped)
            self.assertIsNone(final.handler_name)
            self.assertEqual(final.resolved_intent, AdminIntent.UNKNOWN)
            self.assertEqual(final.response, DEFAULT_FALLBACK_RESPONSE)
            service.classify.assert_not_awaited()
            for handler in handlers.values():
                handler.assert_not_awaited()

        asyncio.run(run())

    def test_handler_that_never_ends_is_stopped_by_loop_guard(self):
        async def run():
            handlers = _counting_handlers()
            handlers[HandlerName.HELP] = AsyncMock(return_value=StateUpdate(response="parcial"))
            orchestrator, _ = _orchestrator(handlers=handlers)

            final = await orchestrator.run_turn(SessionState.start(_caller(), "/ayuda", max_iterations=10))

            self.assertTrue(final.loop_guard_tripped)
            self.assertTrue(final.should_end)
            self.assertEqual(final.response, "parcial")
            self.assertLessEqual(final.iteration_count, 10)
            self.assertGreaterEqual(handlers[HandlerName.HELP].await_count, 1)

        asyncio.run(run())

    def test_handler_exception_is_contained(self):
        async def run():
            handlers = _counting_handlers()
            handlers[HandlerName.GREETING] = AsyncMock(side_effect=RuntimeError("kaput"))
            orchestrator, _ = _orchestrator(handlers=handlers)

            final = await orchestrator.run_turn(SessionState.start(_caller(), "hola"))

            self.assertTrue(final.should_end)
            self.assertTrue(final.error.startswith("internal_error"))
            self.assertTrue(final.response)

        asyncio.run(run())

    def test_empty_handler_response_gets_fallback(self):
        async def run():
            handlers = _counting_handlers()
            handlers[HandlerName.GREETING] = AsyncMock(return_value=StateUpdate(should_end=True))
            orchestrator, _ = _orchestrator(handlers=handlers)

            final = await orchestrator.run_turn(SessionState.start(_caller(), "buenas"))

            self.assertEqual(final.response, DEFAULT_FALLBACK_RESPONSE)

        asyncio.run(run())


if __name__ == "__main__":
    unittest.main()
