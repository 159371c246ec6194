# 📄 File: recurring_billing/modules/subscriptions/domain/services/analytics_aggregator.py
# 🧭 Purpose (Layman Explanation):
# Adds up the numbers that tell you how the subscription business is doing - monthly revenue,
# how many charges succeed, and what is about to be billed
# 🧪 Purpose (Technical Summary):
# Stateless computation of AnalyticsSnapshot and upcoming-payment listings over snapshots
# of subscriptions and payment history
# 🔗 Dependencies:
# decimal, datetime, domain models
# 🔄 Connected Modules / Calls From:
# engine.py (get_analytics, get_upcoming_payments)

from datetime import timedelta
from decimal import Decimal
from typing import Iterable, List

from recurring_billing.shared.utils.helpers import Clock, utc_now

from ..models.analytics import AnalyticsSnapshot
from ..models.payment_history import PaymentHistoryRecord
from ..models.plan import Frequency
from ..models.subscription import Subscription, SubscriptionStatus

MONTH_DAYS = Decimal(30)


def monthly_value(subscription: Subscription) -> Decimal:
    """Monthly equivalent of one subscription's amount."""
    if subscription.frequency == Frequency.MONTHLY:
        return subscription.amount
    return subscription.amount * MONTH_DAYS / Decimal(subscription.interval)


class AnalyticsAggregator:
    """
    Derives portfolio metrics on demand.

    Amounts in different currencies are summed as-is; no conversion is done.
    """

    def __init__(self, clock: Clock = utc_now, churn_rate: float = 2.5, upcoming_window_days: int = 7):
        self._clock = clock
        self.churn_rate = churn_rate
        self.upcoming_window_days = upcoming_window_days

    def snapshot(
        self,
        subscriptions: Iterable[Subscription],
        history: Iterable[PaymentHistoryRecord]
    ) -> AnalyticsSnapshot:
        subscriptions = list(subscriptions)
        history = list(history)
        active = [s for s in subscriptions if s.status == SubscriptionStatus.ACTIVE]

        successes = sum(1 for record in history if record.succeeded)
        success_rate = (successes / len(history) * 100) if history else 0.0

        mrr = sum((monthly_value(s) for s in active), Decimal("0"))
        average = (
            sum((s.amount for s in active), Decimal("0")) / len(active)
            if active else Decimal("0")
        )

        return AnalyticsSnapshot(
            total_subscriptions=len(subscriptions),
            active_subscriptions=len(active),
            monthly_recurring_revenue=mrr,
            churn_rate=self.churn_rate,
            average_subscription_value=average,
            payment_success_rate=success_rate,
            upcoming_payments=len(self.upcoming(active, self.upcoming_window_days)),
            failed_payments=len(history) - successes,
        )

    def upcoming(self, subscriptions: Iterable[Subscription], days: int) -> List[Subscription]:
        """Active subscriptions due within [now, now + days], earliest first."""
        now = self._clock()
        horizon = now + timedelta(days=days)
        due = [
            s for s in subscriptions
            if s.status == SubscriptionStatus.ACTIVE
            and s.next_payment_date is not None
            and now <= s.next_payment_date <= horizon
        ]
        return sorted(due, key=lambda s: s.next_payment_date)
