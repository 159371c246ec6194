from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import make_subscription
from recurring_billing.modules.subscriptions.domain.models import (
    Frequency,
    PaymentHistoryRecord,
    PaymentOutcome,
)
from recurring_billing.modules.subscriptions.domain.services import AnalyticsAggregator, monthly_value


@pytest.fixture
def aggregator(clock):
    return AnalyticsAggregator(clock=clock, churn_rate=2.5, upcoming_window_days=7)


def _record(subscription, outcome, clock):
    return PaymentHistoryRecord(
        subscription_id=subscription.id,
        amount=subscription.amount,
        currency=subscription.currency,
        outcome=outcome,
        payment_date=clock(),
    )


def test_empty_portfolio_is_all_zero(aggregator):
    snapshot = aggregator.snapshot([], [])

    assert snapshot.total_subscriptions == 0
    assert snapshot.active_subscriptions == 0
    assert snapshot.monthly_recurring_revenue == Decimal("0")
    assert snapshot.average_subscription_value == Decimal("0")
    assert snapshot.payment_success_rate == 0.0
    assert snapshot.upcoming_payments == 0
    assert snapshot.failed_payments == 0
    assert snapshot.churn_rate == 2.5


def test_monthly_value_normalizes_frequency(clock):
    assert monthly_value(make_subscription(clock, amount=Decimal("30"))) == Decimal("30")
    assert monthly_value(make_subscription(
        clock, amount=Decimal("30"), frequency=Frequency.QUARTERLY
    )) == Decimal("10")
    assert monthly_value(make_subscription(
        clock, amount=Decimal("7"), frequency=Frequency.WEEKLY
    )) == Decimal("30")


def test_snapshot_counts_only_active_for_revenue(aggregator, clock):
    monthly = make_subscription(clock, amount=Decimal("30"))
    quarterly = make_subscription(clock, amount=Decimal("30"), frequency=Frequency.QUARTERLY)
    paused = make_subscription(clock, amount=Decimal("100"))
    paused.pause(clock())

    snapshot = aggregator.snapshot([monthly, quarterly, paused], [])

    assert snapshot.total_subscriptions == 3
    assert snapshot.active_subscriptions == 2
    assert snapshot.monthly_recurring_revenue == Decimal("40")
    assert snapshot.average_subscription_value == Decimal("30")


def test_success_rate_and_failed_count(aggregator, clock):
    subscription = make_subscription(clock)
    history = [
        _record(subscription, PaymentOutcome.SUCCESS, clock),
        _record(subscription, PaymentOutcome.SUCCESS, clock),
        _record(subscription, PaymentOutcome.SUCCESS, clock),
        _record(subscription, PaymentOutcome.FAILED, clock),
    ]

    snapshot = aggregator.snapshot([subscription], history)

    assert snapshot.payment_success_rate == 75.0
    assert snapshot.failed_payments == 1


def test_upcoming_window_boundaries(aggregator, clock):
    soon = make_subscription(clock, frequency=Frequency.WEEKLY)
    soon.next_payment_date = clock() + timedelta(days=6, hours=23)
    later = make_subscription(clock, frequency=Frequency.WEEKLY)
    later.next_payment_date = clock() + timedelta(days=8)
    overdue = make_subscription(clock, frequency=Frequency.WEEKLY)
    overdue.next_payment_date = clock() - timedelta(hours=1)

    upcoming = aggregator.upcoming([later, soon, overdue], days=7)

    assert upcoming == [soon]
    assert aggregator.snapshot([later, soon, overdue], []).upcoming_payments == 1


def test_upcoming_is_ordered_by_due_date(aggregator, clock):
    first = make_subscription(clock, frequency=Frequency.DAILY)
    second = make_subscription(clock, frequency=Frequency.WEEKLY)

    assert aggregator.upcoming([second, first], days=30) == [first, second]


def test_failed_subscriptions_are_not_upcoming(aggregator, clock):
    subscription = make_subscription(clock, frequency=Frequency.DAILY)
    subscription.record_failed_payment(clock(), clock() + timedelta(hours=24))

    assert aggregator.upcoming([subscription], days=7) == []
