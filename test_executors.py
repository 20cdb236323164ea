import asyncio
import unittest
from unittest.mock import AsyncMock

from admin_channel.config.limits import READ_ATTEMPTS
from admin_channel.config.settings import AdminChannelSettings
from admin_channel.core.context import HandlerContext
from admin_channel.core.errors import ExternalOperationError, ValidationError
from admin_channel.core.executors import execute_pending_action, mutation_budget, normalize_hhmm, parse_hhmm
from admin_channel.models.records import OperationResult
from admin_channel.models.state import CallerContext, EntityType, PendingAction, PendingActionType


CALLER = CallerContext(tenant_id="t-1", user_id="u-1")


def _execute(store, action_type, entity_type, data=None, entity_id=None):
    pending = PendingAction(type=action_type, entity_type=entity_type, data=data or {}, entity_id=entity_id)
    return asyncio.run(execute_pending_action(pending, CALLER, HandlerContext(store=store)))


class TestTimeParsing(unittest.TestCase):
    def test_parse_hhmm(self):
        self.assertEqual(parse_hhmm("9:05"), (9, 5))
        self.assertEqual(parse_hhmm(" 23:59 "), (23, 59))
        self.assertIsNone(parse_hhmm("24:00"))
        self.assertIsNone(parse_hhmm("9h"))
        self.assertIsNone(parse_hhmm(None))

    def test_normalize_hhmm(self):
        self.assertEqual(normalize_hhmm("7:30"), "07:30")
        with self.assertRaises(ValidationError):
            normalize_hhmm("7:75")


class TestHoursExecutor(unittest.TestCase):
    def test_valid_hours_call_store_once(self):
        store = AsyncMock()
        store.upsert_hours = AsyncMock(return_value=OperationResult.ok("h-1"))

        _execute(
            store,
            PendingActionType.CONFIRM_UPDATE,
            EntityType.HOURS,
            {"day": "Sábado", "open_time": "9:00", "close_time": "14:00"},
        )

        store.upsert_hours.assert_awaited_once_with("t-1", "sábado", "09:00", "14:00", False)

    def test_closing_day_skips_times(self):
        store = AsyncMock()
        store.upsert_hours = AsyncMock(return_value=OperationResult.ok("h-1"))

        _execute(store, PendingActionType.CONFIRM_UPDATE, EntityType.HOURS, {"day": "domingo", "is_closed": True})

        store.upsert_hours.assert_awaited_once_with("t-1", "domingo", None, None, True)

    def test_bad_hours_never_reach_store(self):
        store = AsyncMock()
        for data in (
            {"day": "feriado", "open_time": "9:00", "close_time": "18:00"},
            {"day": "lunes", "open_time": "18:00", "close_time": "9:00"},
            {"day": "lunes", "open_time": "9:00"},
        ):
            with self.assertRaises(ValidationError, msg=str(data)):
                _execute(store, PendingActionType.CONFIRM_UPDATE, EntityType.HOURS, data)
        store.upsert_hours.assert_not_awaited()


class TestPromotionExecutor(unittest.TestCase):
    def test_percentage_bounds(self):
        store = AsyncMock()
        for value in (0, -5, 101):
            with self.assertRaises(ValidationError):
                _execute(
                    store,
                    PendingActionType.CONFIRM_CREATE,
                    EntityType.PROMOTION,
                    {"name": "P", "discount_type": "percentage", "discount_value": value},
                )
        store.upsert_promotion.assert_not_awaited()

    def test_fixed_discount_above_hundred_is_fine(self):
        store = AsyncMock()
        store.upsert_promotion = AsyncMock(return_value=OperationResult.ok("p-1"))

        result = _execute(
            store,
            PendingActionType.CONFIRM_CREATE,
            EntityType.PROMOTION,
            {"name": "Promo", "discount_type": "fixed", "discount_value": 250},
        )

        self.assertEqual(result.entity_id, "p-1")
        data = store.upsert_promotion.await_args.args[1]
        self.assertEqual(data["discount_value"], 250.0)

    def test_delete_uses_entity_id(self):
        store = AsyncMock()
        store.delete_promotion = AsyncMock(return_value=OperationResult.ok("p-9"))

        _execute(store, PendingActionType.CONFIRM_DELETE, EntityType.PROMOTION, {"name": "Verano"}, "p-9")

        store.delete_promotion.assert_awaited_once_with("t-1", "p-9")


class TestStaffAndPriceExecutors(unittest.TestCase):
    def test_staff_requires_first_name(self):
        store = AsyncMock()
        with self.assertRaises(ValidationError):
            _execute(store, PendingActionType.CONFIRM_CREATE, EntityType.STAFF, {"last_name": "López"})
        store.upsert_staff.assert_not_awaited()

    def test_price_failure_is_external_error(self):
        store = AsyncMock()
        store.update_price_by_name = AsyncMock(
            return_value=OperationResult.fail('Hay varios servicios que coinciden con "Consulta"')
        )
        with self.assertRaises(ExternalOperationError) as ctx:
            _execute(
                store,
                PendingActionType.CONFIRM_UPDATE,
                EntityType.PRICE,
                {"service_name": "Consulta", "price": "600"},
            )
        self.assertIn("varios servicios", ctx.exception.user_message)

    def test_select_option_is_not_executable(self):
        with self.assertRaises(ValidationError):
            _execute(AsyncMock(), PendingActionType.SELECT_OPTION, EntityType.SERVICE, {"name": "X", "price": 1})


class TestMutationBudget(unittest.TestCase):
    def test_budget_spans_every_read_attempt_and_the_write(self):
        budget = mutation_budget(10.0)
        self.assertGreater(budget, 10.0 * (READ_ATTEMPTS + 1))
        self.assertAlmostEqual(budget, 50.3)

    def test_lookup_then_write_slower_than_one_db_timeout_succeeds(self):
        async def update_price_by_name(_tenant_id, _name, _price):
            # A retried lookup followed by the write.
            await asyncio.sleep(0.08)
            return OperationResult.ok("svc-1", new_price=600.0)

        store = AsyncMock()
        store.update_price_by_name = update_price_by_name
        pending = PendingAction(
            type=PendingActionType.CONFIRM_UPDATE,
            entity_type=EntityType.PRICE,
            data={"service_name": "Consulta", "price": 600},
        )
        ctx = HandlerContext(store=store, settings=AdminChannelSettings(db_timeout_seconds=0.05))

        result = asyncio.run(execute_pending_action(pending, CALLER, ctx))

        self.assertEqual(result.entity_id, "svc-1")


if __name__ == "__main__":
    unittest.main()
