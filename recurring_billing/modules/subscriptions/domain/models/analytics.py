# 📄 File: recurring_billing/modules/subscriptions/domain/models/analytics.py
# 🧭 Purpose (Layman Explanation):
# Defines the health report of the whole subscription business: how many customers pay,
# how much money comes in each month and how often charges succeed
# 🧪 Purpose (Technical Summary):
# Read-only AnalyticsSnapshot value object recomputed on every analytics query
# 🔗 Dependencies:
# pydantic, decimal
# 🔄 Connected Modules / Calls From:
# analytics_aggregator.py, engine.py

from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class AnalyticsSnapshot(BaseModel):
    """Portfolio metrics derived from the live store and payment history."""

    model_config = ConfigDict(frozen=True)

    total_subscriptions: int = 0
    active_subscriptions: int = 0
    monthly_recurring_revenue: Decimal = Decimal("0")
    churn_rate: float = 0.0
    average_subscription_value: Decimal = Decimal("0")
    payment_success_rate: float = 0.0
    upcoming_payments: int = 0
    failed_payments: int = 0
