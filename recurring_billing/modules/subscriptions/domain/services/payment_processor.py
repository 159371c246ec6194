# 📄 File: recurring_billing/modules/subscriptions/domain/services/payment_processor.py
# 🧭 Purpose (Layman Explanation):
# The cashier of the billing engine. When a charge is due it asks the payment provider for the money,
# writes down a receipt either way, and decides what happens next - the next charge, a retry, or the end
# 🧪 Purpose (Technical Summary):
# Executes one billing attempt under the subscription lock: gateway call, history append,
# success/failure bookkeeping, retry policy, scheduler re-arm/disarm and domain event publication
# 🔗 Dependencies:
# Subscription store, payment scheduler, PaymentGateway, event bus, structured logging
# 🔄 Connected Modules / Calls From:
# scheduler.py (dispatch handler), engine.py (manual process_payment)

import time
from datetime import datetime, timedelta
from typing import List, Optional

from recurring_billing.shared.core.event_bus import DomainEvent, EventBus
from recurring_billing.shared.utils.helpers import Clock, generate_id, utc_now
from recurring_billing.shared.utils.logging import get_logger, log_context

from ..events.subscription_events import SubscriptionEventType, payment_event, subscription_event
from ..models.payment_history import PaymentHistoryRecord, PaymentOutcome
from ..models.subscription import Subscription
from ...infrastructure.gateway.base import GatewayOutcome, PaymentGateway
from .scheduler import PaymentScheduler
from .subscription_store import SubscriptionStore

logger = get_logger(__name__)


class PaymentProcessor:
    """
    Runs billing attempts.

    Retry policy: a failed attempt schedules exactly one retry after a
    fixed delay. With max_retries unset the retries never stop; with it
    set, the subscription expires once consecutive failures exceed it.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        gateway: PaymentGateway,
        scheduler: PaymentScheduler,
        event_bus: Optional[EventBus] = None,
        clock: Clock = utc_now,
        retry_delay: timedelta = timedelta(hours=24),
        max_retries: Optional[int] = None
    ):
        self.store = store
        self.gateway = gateway
        self.scheduler = scheduler
        self.event_bus = event_bus
        self._clock = clock
        self.retry_delay = retry_delay
        self.max_retries = max_retries

    async def process(self, subscription_id: str, only_if_due: bool = False) -> Optional[PaymentHistoryRecord]:
        """
        Run one billing attempt for a subscription.

        Args:
            subscription_id: Subscription to bill
            only_if_due: Skip when next_payment_date is still in the future,
                as happens when another attempt already billed this period

        Returns:
            The history record written, or None when the subscription was
            unknown or not billable at invocation time
        """
        subscription = self.store.get(subscription_id)
        if subscription is None:
            logger.warning(f"Billing attempt for unknown subscription {subscription_id}")
            return None

        async with self.store.lock_for(subscription_id):
            if not subscription.is_billable or subscription.next_payment_date is None:
                logger.debug(
                    f"Skipping billing attempt, subscription is {subscription.status.value}",
                    subscription_id=subscription_id
                )
                return None

            if only_if_due and subscription.next_payment_date > self._clock():
                logger.debug(
                    "Skipping billing attempt, not yet due",
                    subscription_id=subscription_id
                )
                return None

            record_id = generate_id("payment_hist")
            with log_context(subscription_id=subscription_id, correlation_id=record_id):
                amount = subscription.amount
                outcome = await self._charge(subscription, amount, record_id)
                paid_at = self._clock()

                record = PaymentHistoryRecord(
                    id=record_id,
                    subscription_id=subscription_id,
                    amount=amount,
                    currency=subscription.currency,
                    outcome=PaymentOutcome.SUCCESS if outcome.success else PaymentOutcome.FAILED,
                    transaction_id=outcome.transaction_id,
                    payment_date=paid_at,
                    error_message=None if outcome.success else (outcome.error or "Payment failed"),
                    created_at=paid_at,
                )
                self.store.append_history(record)

                if record.succeeded:
                    events = self._apply_success(subscription, record)
                else:
                    events = self._apply_failure(subscription, record)

        # Handlers run outside the lock so they may call back into the engine
        if self.event_bus is not None:
            for event in events:
                await self.event_bus.publish(event)

        return record

    async def _charge(self, subscription: Subscription, amount, reference: str) -> GatewayOutcome:
        start_time = time.time()
        try:
            outcome = await self.gateway.attempt(
                amount,
                subscription.currency,
                subscription.payment_method,
                payee=subscription.customer_id,
                reference=reference
            )
        except Exception as e:
            logger.warning(
                f"Gateway raised during billing attempt: {e}",
                error_type=type(e).__name__,
                duration_ms=round((time.time() - start_time) * 1000, 2)
            )
            return GatewayOutcome.declined(str(e) or type(e).__name__)

        return outcome

    def _apply_success(self, subscription: Subscription, record: PaymentHistoryRecord) -> List[DomainEvent]:
        completed = subscription.record_successful_payment(record.amount, record.payment_date)
        events = [payment_event(subscription, record)]

        if completed:
            self.scheduler.disarm(subscription.id)
            events.append(subscription_event(
                SubscriptionEventType.COMPLETED,
                subscription,
                current_payments=subscription.current_payments,
                total_collected=str(subscription.total_collected)
            ))
            logger.log_billing_event(
                "completed",
                f"Subscription completed after {subscription.current_payments} payment(s)",
                subscription_id=subscription.id,
                extra={'total_collected': str(subscription.total_collected)}
            )
        else:
            self.scheduler.arm(subscription.id, subscription.next_payment_date)
            logger.log_billing_event(
                "payment_succeeded",
                f"Payment {subscription.current_payments} collected, next due "
                f"{subscription.next_payment_date.isoformat()}",
                subscription_id=subscription.id,
                extra={'amount': str(record.amount), 'transaction_id': record.transaction_id}
            )
        return events

    def _apply_failure(self, subscription: Subscription, record: PaymentHistoryRecord) -> List[DomainEvent]:
        retry_at: datetime = record.payment_date + self.retry_delay
        subscription.record_failed_payment(record.payment_date, retry_at)

        if self.max_retries is not None and subscription.consecutive_failures > self.max_retries:
            subscription.expire(record.payment_date)
            self.scheduler.disarm(subscription.id)
            logger.log_billing_event(
                "expired",
                f"Subscription expired after {subscription.consecutive_failures} consecutive failures",
                subscription_id=subscription.id,
                extra={'error_message': record.error_message}
            )
            return [
                payment_event(subscription, record),
                subscription_event(
                    SubscriptionEventType.EXPIRED,
                    subscription,
                    consecutive_failures=subscription.consecutive_failures
                ),
            ]

        self.scheduler.arm(subscription.id, retry_at)
        logger.log_billing_event(
            "payment_failed",
            f"Payment failed, retry scheduled for {retry_at.isoformat()}",
            subscription_id=subscription.id,
            extra={
                'error_message': record.error_message,
                'consecutive_failures': subscription.consecutive_failures
            }
        )
        return [
            payment_event(subscription, record, retry_at=retry_at.isoformat()),
            subscription_event(
                SubscriptionEventType.RETRY_SCHEDULED,
                subscription,
                retry_at=retry_at.isoformat(),
                consecutive_failures=subscription.consecutive_failures
            ),
        ]
