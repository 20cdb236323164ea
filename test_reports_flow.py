import asyncio
import unittest
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from admin_channel.config.settings import AdminChannelSettings
from admin_channel.core.context import HandlerContext
from admin_channel.core.flows.analytics_flow import RETRY_MESSAGE, handle_analytics
from admin_channel.core.flows.operations_flow import handle_operations
from admin_channel.models.intents import AdminIntent
from admin_channel.models.state import CallerContext, Capabilities, SessionState, StateUpdate, apply_update
from admin_channel.services.analytics import (
    AIData,
    InventoryAlert,
    LeadsData,
    OperationsData,
    SalesData,
    period_bounds,
    previous_period_bounds,
    revenue_change,
)


NOW = datetime(2026, 3, 31, 15, 0, tzinfo=timezone.utc)


def _state(intent: AdminIntent, vertical: str = "clinic") -> SessionState:
    caller = CallerContext(
        tenant_id="t-1",
        user_id="u-1",
        capabilities=Capabilities(can_view_analytics=True),
        vertical=vertical,
    )
    return apply_update(SessionState.start(caller, "x"), StateUpdate(resolved_intent=intent))


def _source() -> AsyncMock:
    def sales(_tenant_id, _start, end):
        # Current windows end now; previous windows end earlier.
        return SalesData(total=12000, count=8) if end == NOW else SalesData(total=10000, count=7)

    source = AsyncMock()
    source.sales = AsyncMock(side_effect=sales)
    source.leads = AsyncMock(return_value=LeadsData(total=10, hot=3, warm=4, cold=3, converted=2))
    source.ai_activity = AsyncMock(return_value=AIData(conversations=20, messages=140, resolved=18, escalated=2))
    source.operations = AsyncMock(return_value=OperationsData(appointments=6))
    return source


def _ctx(source, **settings) -> HandlerContext:
    return HandlerContext(store=AsyncMock(), analytics=source, clock=lambda: NOW, settings=AdminChannelSettings(**settings))


class TestPeriods(unittest.TestCase):
    def test_bounds(self):
        start, end = period_bounds("daily", NOW)
        self.assertEqual(start, datetime(2026, 3, 31, tzinfo=timezone.utc))
        self.assertEqual(end, NOW)

        start, _ = period_bounds("monthly", NOW)
        self.assertEqual(start, datetime(2026, 2, 28, 15, 0, tzinfo=timezone.utc))

        prev_start, prev_end = previous_period_bounds("weekly", NOW)
        self.assertEqual(prev_start, datetime(2026, 3, 17, 15, 0, tzinfo=timezone.utc))
        self.assertEqual(prev_end, datetime(2026, 3, 24, 15, 0, tzinfo=timezone.utc))

    def test_revenue_change(self):
        self.assertEqual(revenue_change(12000, 10000), 20)
        self.assertEqual(revenue_change(5000, 10000), -50)
        self.assertEqual(revenue_change(5000, 0), 0)


class TestAnalyticsHandler(unittest.TestCase):
    def test_daily_summary_combines_all_reads(self):
        async def run():
            source = _source()
            update = await handle_analytics(_state(AdminIntent.ANALYTICS_DAILY_SUMMARY), _ctx(source))

            self.assertIn("$12,000", update.response)
            self.assertIn("+20%", update.response)
            self.assertIn("Citas: 6", update.response)
            self.assertEqual(source.sales.await_count, 2)
            source.leads.assert_awaited_once()
            source.ai_activity.assert_awaited_once()
            source.operations.assert_awaited_once()
            self.assertIsNotNone(update.keyboard)
            self.assertTrue(update.should_end)

        asyncio.run(run())

    def test_slow_read_yields_retry_message(self):
        async def run():
            async def slow(*_args):
                await asyncio.sleep(1)
                return LeadsData()

            source = _source()
            source.leads = slow
            update = await handle_analytics(
                _state(AdminIntent.ANALYTICS_WEEKLY_SUMMARY),
                _ctx(source, db_timeout_seconds=0.01),
            )

            self.assertEqual(update.response, RETRY_MESSAGE)
            self.assertTrue(update.error.startswith("external_operation_error"))
            self.assertTrue(update.should_end)

        asyncio.run(run())

    def test_failed_read_yields_retry_message(self):
        async def run():
            from admin_channel.core.errors import ExternalOperationError

            source = _source()
            source.ai_activity = AsyncMock(side_effect=ExternalOperationError("Get conversations failed"))
            update = await handle_analytics(_state(AdminIntent.ANALYTICS_AI_PERFORMANCE), _ctx(source))

            self.assertEqual(update.response, RETRY_MESSAGE)

        asyncio.run(run())

    def test_failed_read_waits_for_the_others(self):
        async def run():
            from admin_channel.core.errors import ExternalOperationError

            finished = []

            async def slow_leads(*_args):
                await asyncio.sleep(0.05)
                finished.append("leads")
                raise ExternalOperationError("Get leads failed")

            source = _source()
            source.sales = AsyncMock(side_effect=ExternalOperationError("Get sales failed"))
            source.leads = slow_leads
            update = await handle_analytics(_state(AdminIntent.ANALYTICS_DAILY_SUMMARY), _ctx(source))

            self.assertEqual(update.response, RETRY_MESSAGE)
            self.assertEqual(finished, ["leads"])
            source.ai_activity.assert_awaited_once()
            source.operations.assert_awaited_once()

        asyncio.run(run())

    def test_revenue_comparison_waits_for_both_reads(self):
        async def run():
            from admin_channel.core.errors import ExternalOperationError

            finished = []

            async def sales(_tenant_id, _start, end):
                if end == NOW:
                    raise ExternalOperationError("Get sales failed")
                await asyncio.sleep(0.05)
                finished.append("previous")
                return SalesData(total=1, count=1)

            source = _source()
            source.sales = sales
            update = await handle_analytics(_state(AdminIntent.ANALYTICS_REVENUE), _ctx(source))

            self.assertEqual(update.response, RETRY_MESSAGE)
            self.assertEqual(finished, ["previous"])

        asyncio.run(run())

    def test_leads_report(self):
        async def run():
            update = await handle_analytics(_state(AdminIntent.ANALYTICS_LEADS), _ctx(_source()))
            self.assertIn("Calientes: 3", update.response)
            self.assertIn("(20%)", update.response)

        asyncio.run(run())

    def test_inventory_report_counts_out_of_stock(self):
        async def run():
            source = _source()
            source.low_stock = AsyncMock(
                return_value=[
                    InventoryAlert(name="Guantes", current=0, minimum=10),
                    InventoryAlert(name="Resina", current=2, minimum=5),
                ]
            )
            update = await handle_analytics(_state(AdminIntent.ANALYTICS_INVENTORY), _ctx(source))

            self.assertIn("Bajo mínimo: 2", update.response)
            self.assertIn("Agotados: 1", update.response)

        asyncio.run(run())


class TestOperationsHandler(unittest.TestCase):
    def test_pending_orders_listing(self):
        async def run():
            source = AsyncMock()
            source.pending_orders = AsyncMock(
                return_value=[{"id": "o-1", "order_number": 101, "status": "preparing", "total": 350}]
            )
            update = await handle_operations(
                _state(AdminIntent.OPERATION_PENDING_ORDERS, "restaurant"),
                _ctx(source),
            )
            self.assertIn("#101", update.response)
            self.assertIn("$350", update.response)

        asyncio.run(run())

    def test_empty_escalations(self):
        async def run():
            source = AsyncMock()
            source.escalations = AsyncMock(return_value=[])
            update = await handle_operations(_state(AdminIntent.OPERATION_ESCALATIONS), _ctx(source))
            self.assertIn("No hay escalaciones", update.response)

        asyncio.run(run())

    def test_appointments_today_window(self):
        async def run():
            source = AsyncMock()
            source.appointments_between = AsyncMock(
                return_value=[{"scheduled_at": "2026-03-31T16:30:00+00:00", "patient_name": "Luis", "service_name": "Consulta"}]
            )
            update = await handle_operations(_state(AdminIntent.OPERATION_APPOINTMENTS_TODAY), _ctx(source))

            _, start, end = source.appointments_between.await_args.args
            self.assertEqual(start, datetime(2026, 3, 31, tzinfo=timezone.utc))
            self.assertEqual(end, datetime(2026, 4, 1, tzinfo=timezone.utc))
            self.assertIn("16:30 Luis - Consulta", update.response)

        asyncio.run(run())

    def test_missing_source_degrades(self):
        async def run():
            update = await handle_operations(
                _state(AdminIntent.OPERATION_INVENTORY_CHECK),
                HandlerContext(store=AsyncMock()),
            )
            self.assertTrue(update.error.startswith("external_operation_error"))

        asyncio.run(run())


if __name__ == "__main__":
    unittest.main()
