import asyncio
import unittest
from unittest.mock import AsyncMock

from admin_channel.config.settings import AdminChannelSettings
from admin_channel.core.agent import UNAVAILABLE_MESSAGE, AdminChannelRuntime, process_admin_message
from admin_channel.core.classifier import FallbackClassifier
from admin_channel.core.context import HandlerContext
from admin_channel.core.errors import ExternalOperationError, ValidationError
from admin_channel.core.orchestrator import AdminChannelOrchestrator
from admin_channel.models.intents import AdminIntent
from admin_channel.models.state import CallerContext, EntityType, HistoryEntry, PendingAction, PendingActionType
from admin_channel.services.conversation_store import ConversationRef


CALLER = CallerContext(tenant_id="t-1", user_id="u-1", business_name="Clínica Sonrisa")


def _runtime(conversations, reply='{"intent": "unknown"}'):
    service = AsyncMock()
    service.classify = AsyncMock(return_value=reply)
    orchestrator = AdminChannelOrchestrator(FallbackClassifier(service), HandlerContext(store=AsyncMock()))
    return AdminChannelRuntime(orchestrator=orchestrator, conversations=conversations, settings=AdminChannelSettings())


def _conversations(history=None, pending=None):
    store = AsyncMock()
    store.get_or_create_conversation = AsyncMock(return_value=ConversationRef(conversation_id="c-1"))
    store.load_recent_history = AsyncMock(return_value=history or [])
    store.load_pending_action = AsyncMock(return_value=pending)
    store.persist = AsyncMock(return_value=None)
    return store


class TestProcessAdminMessage(unittest.TestCase):
    def test_turn_is_run_and_persisted(self):
        async def run():
            store = _conversations(history=[HistoryEntry(role="user", content="hola")])
            result = await process_admin_message(_runtime(store), CALLER, "/ayuda", message_id="42")

            self.assertTrue(result.text)
            self.assertEqual(result.state.resolved_intent, AdminIntent.HELP)
            self.assertEqual(result.state.inbound.message_id, "42")
            self.assertEqual(len(result.state.conversation_history), 1)
            store.persist.assert_awaited_once()
            conversation_id, persisted = store.persist.await_args.args
            self.assertEqual(conversation_id, "c-1")
            self.assertIs(persisted, result.state)

        asyncio.run(run())

    def test_loaded_pending_action_is_cancelled(self):
        async def run():
            pending = PendingAction(
                type=PendingActionType.CONFIRM_CREATE,
                entity_type=EntityType.SERVICE,
                data={"name": "Limpieza", "price": 500},
            )
            store = _conversations(pending=pending)
            result = await process_admin_message(_runtime(store), CALLER, "/cancelar")

            self.assertIsNone(result.state.pending_action)
            self.assertEqual(result.state.resolved_intent, AdminIntent.CANCEL)

        asyncio.run(run())

    def test_load_failure_answers_unavailable(self):
        async def run():
            store = _conversations()
            store.load_recent_history = AsyncMock(side_effect=ExternalOperationError("Load history failed"))
            runtime = _runtime(store)

            result = await process_admin_message(runtime, CALLER, "/ayuda")

            self.assertEqual(result.text, UNAVAILABLE_MESSAGE)
            self.assertIsNone(result.state)
            store.persist.assert_not_awaited()

        asyncio.run(run())

    def test_persist_failure_still_replies(self):
        async def run():
            store = _conversations()
            store.persist = AsyncMock(side_effect=ConnectionError("db down"))

            result = await process_admin_message(_runtime(store), CALLER, "/ayuda")

            self.assertTrue(result.text)
            self.assertNotEqual(result.text, UNAVAILABLE_MESSAGE)

        asyncio.run(run())

    def test_caller_without_user_id_is_rejected(self):
        with self.assertRaises(ValidationError):
            asyncio.run(process_admin_message(_runtime(_conversations()), CallerContext(tenant_id="t-1"), "hola"))


if __name__ == "__main__":
    unittest.main()
