"""Closed set of intents understood by the admin channel."""

from enum import Enum
from typing import Optional


class AdminIntent(str, Enum):
    """What the operator wants. Grouped by prefix into capability families."""

    # Analytics
    ANALYTICS_DAILY_SUMMARY = "analytics_daily_summary"
    ANALYTICS_WEEKLY_SUMMARY = "analytics_weekly_summary"
    ANALYTICS_MONTHLY_SUMMARY = "analytics_monthly_summary"
    ANALYTICS_SALES = "analytics_sales"
    ANALYTICS_LEADS = "analytics_leads"
    ANALYTICS_ORDERS = "analytics_orders"
    ANALYTICS_INVENTORY = "analytics_inventory"
    ANALYTICS_AI_PERFORMANCE = "analytics_ai_performance"
    ANALYTICS_APPOINTMENTS = "analytics_appointments"
    ANALYTICS_REVENUE = "analytics_revenue"

    # Configuration
    CONFIG_SERVICES = "config_services"
    CONFIG_PRICES = "config_prices"
    CONFIG_HOURS = "config_hours"
    CONFIG_STAFF = "config_staff"
    CONFIG_AI_SETTINGS = "config_ai_settings"
    CONFIG_PROMOTIONS = "config_promotions"
    CONFIG_NOTIFICATIONS = "config_notifications"

    # Operations
    OPERATION_INVENTORY_CHECK = "operation_inventory_check"
    OPERATION_PENDING_ORDERS = "operation_pending_orders"
    OPERATION_ESCALATIONS = "operation_escalations"
    OPERATION_APPOINTMENTS_TODAY = "operation_appointments_today"
    OPERATION_PENDING_LEADS = "operation_pending_leads"

    # Notifications
    NOTIFICATION_SETTINGS = "notification_settings"
    NOTIFICATION_PAUSE = "notification_pause"
    NOTIFICATION_RESUME = "notification_resume"
    NOTIFICATION_TEST = "notification_test"

    # Meta
    HELP = "help"
    GREETING = "greeting"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "AdminIntent":
        """Map a raw identifier to a member, ``UNKNOWN`` when not recognized."""

        if not isinstance(value, str):
            return cls.UNKNOWN
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def family(self) -> str:
        return self.value.split("_", 1)[0] if "_" in self.value else self.value
