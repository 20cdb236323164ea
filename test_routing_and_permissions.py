import unittest

from admin_channel.core.handlers import HANDLERS
from admin_channel.core.permissions import is_allowed
from admin_channel.core.router import INTENT_HANDLERS, HandlerName, route
from admin_channel.models.intents import AdminIntent
from admin_channel.models.state import Capabilities


class TestRouter(unittest.TestCase):
    def test_every_intent_is_routed(self):
        self.assertEqual(set(INTENT_HANDLERS), set(AdminIntent))

    def test_families_route_to_their_handler(self):
        self.assertEqual(route(AdminIntent.ANALYTICS_REVENUE), HandlerName.ANALYTICS)
        self.assertEqual(route(AdminIntent.CONFIG_NOTIFICATIONS), HandlerName.CONFIG)
        self.assertEqual(route(AdminIntent.OPERATION_ESCALATIONS), HandlerName.OPERATIONS)
        self.assertEqual(route(AdminIntent.NOTIFICATION_TEST), HandlerName.NOTIFICATIONS)
        self.assertEqual(route(AdminIntent.CONFIRM), HandlerName.CONFIRM)
        self.assertEqual(route(AdminIntent.CANCEL), HandlerName.CANCEL)
        self.assertEqual(route(AdminIntent.GREETING), HandlerName.GREETING)

    def test_unknown_goes_to_help(self):
        self.assertEqual(route(AdminIntent.UNKNOWN), HandlerName.HELP)
        self.assertEqual(route(AdminIntent.parse("nonsense")), HandlerName.HELP)

    def test_every_handler_name_is_registered(self):
        self.assertEqual(set(HANDLERS), set(HandlerName))


class TestPermissions(unittest.TestCase):
    def test_analytics_requires_view_capability(self):
        analytics = [i for i in AdminIntent if i.value.startswith("analytics_")]
        self.assertTrue(analytics)
        for intent in analytics:
            self.assertFalse(is_allowed(intent, Capabilities()))
            self.assertTrue(is_allowed(intent, Capabilities(can_view_analytics=True)))

    def test_config_requires_configure_capability(self):
        for intent in (i for i in AdminIntent if i.value.startswith("config_")):
            self.assertFalse(is_allowed(intent, Capabilities(can_view_analytics=True)))
            self.assertTrue(is_allowed(intent, Capabilities(can_configure=True)))

    def test_everything_else_is_open(self):
        for intent in (
            AdminIntent.HELP,
            AdminIntent.GREETING,
            AdminIntent.CONFIRM,
            AdminIntent.CANCEL,
            AdminIntent.UNKNOWN,
            AdminIntent.OPERATION_PENDING_ORDERS,
            AdminIntent.NOTIFICATION_PAUSE,
        ):
            self.assertTrue(is_allowed(intent, Capabilities()), intent)


if __name__ == "__main__":
    unittest.main()
