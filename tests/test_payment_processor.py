from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import make_subscription
from recurring_billing.modules.subscriptions.domain.events import SubscriptionEventType
from recurring_billing.modules.subscriptions.domain.models import (
    Frequency,
    PaymentOutcome,
    SubscriptionStatus,
)
from recurring_billing.modules.subscriptions.domain.services import (
    PaymentProcessor,
    PaymentScheduler,
    SubscriptionStore,
)
from recurring_billing.modules.subscriptions.infrastructure.gateway import GatewayOutcome
from recurring_billing.shared.core.event_bus import EventBus
from recurring_billing.shared.core.exceptions import GatewayError


async def _noop(subscription_id):
    return None


@pytest.fixture
def store(clock):
    return SubscriptionStore(clock=clock)


@pytest.fixture
def scheduler(clock):
    return PaymentScheduler(handler=_noop, clock=clock)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def processor(store, gateway, scheduler, bus, clock):
    return PaymentProcessor(
        store=store,
        gateway=gateway,
        scheduler=scheduler,
        event_bus=bus,
        clock=clock,
        retry_delay=timedelta(hours=24),
    )


async def test_successful_attempt_advances_schedule(processor, store, scheduler, gateway, clock):
    subscription = store.add(make_subscription(clock))
    clock.advance(days=30)

    record = await processor.process(subscription.id)

    assert record.outcome == PaymentOutcome.SUCCESS
    assert record.transaction_id == "tx_1"
    assert subscription.current_payments == 1
    assert subscription.total_collected == Decimal("10.00")
    assert subscription.last_payment_date == clock()
    assert subscription.next_payment_date == clock() + timedelta(days=30)
    assert scheduler.due_time(subscription.id) == subscription.next_payment_date
    assert gateway.calls[0]["payee"] == "cust_1"
    assert gateway.calls[0]["reference"] == record.id


async def test_failed_attempt_arms_single_retry(processor, store, scheduler, gateway, clock):
    gateway.queue(False)
    subscription = store.add(make_subscription(clock))
    clock.advance(days=30)

    record = await processor.process(subscription.id)

    assert record.outcome == PaymentOutcome.FAILED
    assert record.error_message == "Insufficient funds"
    assert subscription.status == SubscriptionStatus.FAILED
    assert subscription.consecutive_failures == 1
    assert subscription.next_payment_date == clock() + timedelta(hours=24)
    assert scheduler.pending() == {subscription.id: clock() + timedelta(hours=24)}
    assert len(store.history(subscription.id)) == 1


async def test_retry_success_returns_to_active(processor, store, gateway, clock):
    gateway.queue(False, True)
    subscription = store.add(make_subscription(clock))
    clock.advance(days=30)
    await processor.process(subscription.id)
    clock.advance(hours=24)

    await processor.process(subscription.id)

    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.current_payments == 1
    assert subscription.consecutive_failures == 0
    assert [r.outcome for r in store.history(subscription.id)] == [
        PaymentOutcome.FAILED, PaymentOutcome.SUCCESS
    ]


async def test_gateway_exception_is_recorded_as_failure(processor, store, gateway, clock):
    gateway.queue(GatewayError("Gateway timed out after 30s"))
    subscription = store.add(make_subscription(clock))

    record = await processor.process(subscription.id)

    assert record.outcome == PaymentOutcome.FAILED
    assert record.error_message == "Gateway timed out after 30s"
    assert subscription.status == SubscriptionStatus.FAILED


async def test_daily_subscription_completes_at_max_payments(processor, store, scheduler, gateway, clock):
    subscription = store.add(make_subscription(clock, frequency=Frequency.DAILY, max_payments=3))

    for _ in range(3):
        clock.advance(days=1)
        await processor.process(subscription.id)

    assert subscription.status == SubscriptionStatus.COMPLETED
    assert subscription.current_payments == 3
    assert subscription.next_payment_date is None
    assert not scheduler.has_entry(subscription.id)

    clock.advance(days=1)
    assert await processor.process(subscription.id) is None
    assert len(gateway.calls) == 3
    assert subscription.current_payments == 3


async def test_success_past_end_date_completes(processor, store, clock):
    subscription = store.add(make_subscription(
        clock, frequency=Frequency.WEEKLY, end_date=clock() + timedelta(days=10)
    ))
    clock.advance(days=7)

    await processor.process(subscription.id)

    assert subscription.status == SubscriptionStatus.COMPLETED
    assert subscription.next_payment_date is None


async def test_paused_subscription_is_not_billed(processor, store, gateway, clock):
    subscription = store.add(make_subscription(clock))
    await store.pause(subscription.id)

    assert await processor.process(subscription.id) is None
    assert gateway.calls == []
    assert store.history(subscription.id) == []


async def test_unknown_subscription_is_a_noop(processor):
    assert await processor.process("recurring_missing") is None


async def test_only_if_due_skips_future_charges(processor, store, gateway, clock):
    subscription = store.add(make_subscription(clock))

    assert await processor.process(subscription.id, only_if_due=True) is None
    assert gateway.calls == []


async def test_amount_change_applies_to_next_attempt(processor, store, gateway, clock):
    subscription = store.add(make_subscription(clock))
    await store.update_amount(subscription.id, "15.00")

    record = await processor.process(subscription.id)

    assert record.amount == Decimal("15.00")
    assert gateway.calls[0]["amount"] == Decimal("15.00")


async def test_retry_cap_expires_subscription(store, gateway, scheduler, bus, clock):
    processor = PaymentProcessor(
        store=store, gateway=gateway, scheduler=scheduler, event_bus=bus,
        clock=clock, retry_delay=timedelta(hours=1), max_retries=1,
    )
    gateway.queue(False, False)
    subscription = store.add(make_subscription(clock))

    await processor.process(subscription.id)
    assert subscription.status == SubscriptionStatus.FAILED
    clock.advance(hours=1)
    await processor.process(subscription.id)

    assert subscription.status == SubscriptionStatus.EXPIRED
    assert subscription.next_payment_date is None
    assert not scheduler.has_entry(subscription.id)
    assert bus.event_store.get_events(event_type=SubscriptionEventType.EXPIRED.value)


async def test_total_collected_matches_successful_history(processor, store, gateway, clock):
    gateway.queue(True, False, True, GatewayOutcome.declined("Card expired"), True)
    subscription = store.add(make_subscription(clock, frequency=Frequency.DAILY))

    for _ in range(5):
        clock.advance(days=1)
        await processor.process(subscription.id)

    history = store.history(subscription.id)
    assert subscription.total_collected == sum(r.amount for r in history if r.succeeded)
    assert subscription.current_payments == 3


async def test_payment_events_are_published(processor, store, bus, gateway, clock):
    gateway.queue(False, True)
    subscription = store.add(make_subscription(clock))

    await processor.process(subscription.id)
    clock.advance(hours=24)
    await processor.process(subscription.id)

    types = [e.event_type for e in bus.event_store.get_events(aggregate_id=subscription.id)]
    assert types == [
        SubscriptionEventType.PAYMENT_FAILED.value,
        SubscriptionEventType.RETRY_SCHEDULED.value,
        SubscriptionEventType.PAYMENT_SUCCEEDED.value,
    ]
