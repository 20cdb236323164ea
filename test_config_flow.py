import asyncio
import unittest
from datetime import datetime, timezone
from typing import Optional
from unittest.mock import AsyncMock

from admin_channel.core.context import HandlerContext
from admin_channel.core.flows.config_flow import handle_config
from admin_channel.models.intents import AdminIntent
from admin_channel.models.records import OperationResult
from admin_channel.models.state import (
    CallerContext,
    Capabilities,
    EntityType,
    PendingActionType,
    SessionState,
    StateUpdate,
    apply_update,
)


NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)


def _run(text: str, intent: AdminIntent, store=None, entities: Optional[dict] = None) -> StateUpdate:
    caller = CallerContext(tenant_id="t-1", user_id="u-1", capabilities=Capabilities(can_configure=True))
    state = apply_update(
        SessionState.start(caller, text),
        StateUpdate(resolved_intent=intent, extracted_entities=entities or {}),
    )
    ctx = HandlerContext(store=store if store is not None else AsyncMock(), clock=lambda: NOW)
    return asyncio.run(handle_config(state, ctx))


class TestServiceProposals(unittest.TestCase):
    def test_create_service_with_duration(self):
        update = _run("agregar servicio Blanqueamiento $1,250.50 90 min", AdminIntent.CONFIG_SERVICES)

        pending = update.pending_action
        self.assertEqual(pending.type, PendingActionType.CONFIRM_CREATE)
        self.assertEqual(pending.entity_type, EntityType.SERVICE)
        self.assertEqual(pending.data, {"name": "Blanqueamiento", "price": 1250.5, "duration_minutes": 90})
        self.assertEqual((pending.expires_at - NOW).total_seconds(), 300)
        self.assertEqual([b.callback_data for b in update.keyboard[0]], ["/confirmar", "/cancelar"])
        self.assertTrue(update.should_end)

    def test_create_without_price_asks_for_it(self):
        update = _run("agregar servicio Limpieza", AdminIntent.CONFIG_SERVICES)

        self.assertNotIn("pending_action", update.model_fields_set)
        self.assertIn("Precio", update.response)
        self.assertTrue(update.should_end)

    def test_create_uses_classifier_entities_as_fallback(self):
        update = _run(
            "quiero un nuevo servicio",
            AdminIntent.CONFIG_SERVICES,
            entities={"serviceName": "Consulta General", "price": "450"},
        )
        self.assertEqual(update.pending_action.data["name"], "Consulta General")
        self.assertEqual(update.pending_action.data["price"], 450.0)

    def test_delete_resolves_service_id(self):
        store = AsyncMock()
        store.get_services = AsyncMock(
            return_value=OperationResult.ok(services=[{"id": "svc-7", "name": "Limpieza Dental", "price": 500}])
        )
        update = _run("eliminar servicio limpieza dental", AdminIntent.CONFIG_SERVICES, store)

        self.assertEqual(update.pending_action.type, PendingActionType.CONFIRM_DELETE)
        self.assertEqual(update.pending_action.entity_id, "svc-7")

    def test_delete_unknown_service_does_not_propose(self):
        store = AsyncMock()
        store.get_services = AsyncMock(return_value=OperationResult.ok(services=[]))
        update = _run("eliminar servicio Ortodoncia", AdminIntent.CONFIG_SERVICES, store)

        self.assertNotIn("pending_action", update.model_fields_set)
        self.assertIn("Ortodoncia", update.response)

    def test_bare_config_command_shows_menu(self):
        store = AsyncMock()
        store.get_services = AsyncMock(return_value=OperationResult.ok(services=[{"id": "1", "name": "A"}]))
        update = _run("/config", AdminIntent.CONFIG_SERVICES, store, entities={"command": "/config"})

        self.assertIn("Servicios activos: 1", update.response)
        self.assertIsNotNone(update.keyboard)

    def test_store_read_failure_degrades(self):
        store = AsyncMock()
        store.get_services = AsyncMock(return_value=OperationResult.fail("db down"))
        update = _run("ver servicios", AdminIntent.CONFIG_SERVICES, store)

        self.assertTrue(update.error.startswith("external_operation_error"))
        self.assertTrue(update.should_end)


class TestOtherProposals(unittest.TestCase):
    def test_price_change(self):
        update = _run("cambiar precio de Consulta a $600", AdminIntent.CONFIG_PRICES)

        self.assertEqual(update.pending_action.entity_type, EntityType.PRICE)
        self.assertEqual(update.pending_action.type, PendingActionType.CONFIRM_UPDATE)
        self.assertEqual(update.pending_action.data, {"service_name": "Consulta", "price": 600.0})

    def test_hours_change_and_close(self):
        update = _run("cambiar miércoles a 9:00-18:30", AdminIntent.CONFIG_HOURS)
        self.assertEqual(
            update.pending_action.data,
            {"day": "miercoles", "open_time": "09:00", "close_time": "18:30", "is_closed": False},
        )
        self.assertIn("Miércoles", update.response)

        closed = _run("cerrar el domingo", AdminIntent.CONFIG_HOURS)
        self.assertEqual(closed.pending_action.data, {"day": "domingo", "is_closed": True})

    def test_inverted_hours_are_rejected(self):
        update = _run("cambiar lunes a 18:00-9:00", AdminIntent.CONFIG_HOURS)
        self.assertNotIn("pending_action", update.model_fields_set)

    def test_staff_create_with_role(self):
        update = _run("agregar empleado Ana López como recepcionista", AdminIntent.CONFIG_STAFF)
        self.assertEqual(
            update.pending_action.data,
            {"first_name": "Ana", "last_name": "López", "role": "recepcionista"},
        )

    def test_percentage_promotion(self):
        update = _run("crear promoción 20% en Limpieza", AdminIntent.CONFIG_PROMOTIONS)
        data = update.pending_action.data
        self.assertEqual(data["discount_type"], "percentage")
        self.assertEqual(data["discount_value"], 20.0)
        self.assertIn("Limpieza", data["name"])

    def test_percentage_over_hundred_is_rejected(self):
        update = _run("crear promoción 150% en todo", AdminIntent.CONFIG_PROMOTIONS)
        self.assertNotIn("pending_action", update.model_fields_set)

    def test_fixed_promotion(self):
        update = _run("crear promoción $100 de descuento", AdminIntent.CONFIG_PROMOTIONS)
        self.assertEqual(update.pending_action.data["discount_type"], "fixed")
        self.assertEqual(update.pending_action.data["discount_value"], 100.0)

    def test_new_proposal_overwrites_previous(self):
        caller = CallerContext(tenant_id="t-1", user_id="u-1", capabilities=Capabilities(can_configure=True))
        ctx = HandlerContext(store=AsyncMock(), clock=lambda: NOW)

        async def run():
            state = SessionState.start(caller, "cambiar precio de Consulta a $600")
            state = apply_update(state, StateUpdate(resolved_intent=AdminIntent.CONFIG_PRICES))
            state = apply_update(state, await handle_config(state, ctx))
            first = state.pending_action

            state = state.model_copy(update={"inbound": state.inbound.model_copy(update={"text": "cerrar domingo"})})
            state = apply_update(state, StateUpdate(resolved_intent=AdminIntent.CONFIG_HOURS))
            state = apply_update(state, await handle_config(state, ctx))

            self.assertEqual(first.entity_type, EntityType.PRICE)
            self.assertEqual(state.pending_action.entity_type, EntityType.HOURS)

        asyncio.run(run())


if __name__ == "__main__":
    unittest.main()
