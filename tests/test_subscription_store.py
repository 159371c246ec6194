from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import make_subscription
from recurring_billing.modules.subscriptions.domain.models import Frequency, SubscriptionStatus
from recurring_billing.modules.subscriptions.domain.services import SubscriptionStore
from recurring_billing.shared.core.exceptions import ValidationError


@pytest.fixture
def store(clock):
    return SubscriptionStore(clock=clock)


@pytest.fixture
def subscription(store, clock):
    return store.add(make_subscription(clock))


def test_open_schedules_first_charge_one_interval_after_start(clock):
    subscription = make_subscription(clock, frequency=Frequency.WEEKLY)

    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.next_payment_date == clock() + timedelta(days=7)
    assert subscription.interval == 7
    assert subscription.current_payments == 0
    assert subscription.total_collected == Decimal("0")


def test_open_rejects_end_date_before_start(clock):
    with pytest.raises(ValidationError):
        make_subscription(clock, end_date=clock() - timedelta(days=1))


def test_open_rejects_first_charge_after_end_date(clock):
    with pytest.raises(ValidationError) as exc_info:
        make_subscription(clock, end_date=clock() + timedelta(days=10))

    assert exc_info.value.details["field"] == "end_date"


async def test_pause_and_resume_keep_next_payment_date(store, subscription, clock):
    due = subscription.next_payment_date
    clock.advance(days=3)

    paused = await store.pause(subscription.id)
    assert paused
    assert subscription.status == SubscriptionStatus.PAUSED
    assert subscription.updated_at == clock()

    resumed = await store.resume(subscription.id)
    assert resumed
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.next_payment_date == due
    assert store.history(subscription.id) == []


async def test_pause_requires_active(store, subscription):
    await store.pause(subscription.id)

    result = await store.pause(subscription.id)

    assert not result
    assert result.error_code == "INVALID_STATE_TRANSITION"


async def test_resume_requires_paused(store, subscription):
    result = await store.resume(subscription.id)

    assert not result
    assert result.error_code == "INVALID_STATE_TRANSITION"
    assert subscription.status == SubscriptionStatus.ACTIVE


async def test_unknown_id_fails_with_not_found(store):
    result = await store.cancel("recurring_missing")

    assert not result
    assert result.error_code == "NOT_FOUND"


async def test_cancel_is_terminal(store, subscription):
    first = await store.cancel(subscription.id, reason="Too expensive")
    second = await store.cancel(subscription.id)

    assert first
    assert not second
    assert second.error_code == "INVALID_STATE_TRANSITION"
    assert subscription.status == SubscriptionStatus.CANCELLED
    assert subscription.next_payment_date is None
    assert subscription.metadata["cancellation_reason"] == "Too expensive"


async def test_cancel_allowed_while_paused_and_failed(store, clock):
    paused = store.add(make_subscription(clock))
    await store.pause(paused.id)
    failed = store.add(make_subscription(clock))
    failed.record_failed_payment(clock(), clock() + timedelta(days=1))

    assert await store.cancel(paused.id)
    assert await store.cancel(failed.id)


async def test_update_amount(store, subscription):
    due = subscription.next_payment_date

    result = await store.update_amount(subscription.id, 12.5)

    assert result
    assert subscription.amount == Decimal("12.5")
    assert subscription.next_payment_date == due


@pytest.mark.parametrize("amount", [0, -1, "abc"])
async def test_update_amount_rejects_non_positive(store, subscription, amount):
    result = await store.update_amount(subscription.id, amount)

    assert not result
    assert result.error_code == "VALIDATION_ERROR"
    assert subscription.amount == Decimal("10.00")


async def test_update_amount_requires_active(store, subscription):
    await store.pause(subscription.id)

    result = await store.update_amount(subscription.id, 20)

    assert not result
    assert result.error_code == "INVALID_STATE_TRANSITION"


def test_billable_schedule_lists_active_and_failed_only(store, clock):
    active = store.add(make_subscription(clock))
    failed = store.add(make_subscription(clock))
    retry_at = clock() + timedelta(days=1)
    failed.record_failed_payment(clock(), retry_at)
    paused = store.add(make_subscription(clock))
    paused.pause(clock())

    schedule = dict(store.billable_schedule())

    assert schedule == {active.id: active.next_payment_date, failed.id: retry_at}


def test_customer_and_status_queries(store, clock):
    a = store.add(make_subscription(clock, customer_id="cust_a"))
    b = store.add(make_subscription(clock, customer_id="cust_b"))
    b.pause(clock())

    assert store.by_customer("cust_a") == [a]
    assert store.by_status(SubscriptionStatus.ACTIVE) == [a]
    assert len(store) == 2


def test_duplicate_id_is_rejected(store, subscription, clock):
    with pytest.raises(ValidationError):
        store.add(make_subscription(clock, id=subscription.id))
