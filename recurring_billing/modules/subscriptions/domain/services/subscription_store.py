# 📄 File: recurring_billing/modules/subscriptions/domain/services/subscription_store.py
# 🧭 Purpose (Layman Explanation):
# The filing cabinet for every subscription and every charge attempt. It is the only place allowed to
# change a subscription, and it refuses changes that make no sense (like resuming something never paused)
# 🧪 Purpose (Technical Summary):
# In-memory subscription table with append-only payment history, per-subscription asyncio locks
# serializing mutations and billing attempts, and result-returning state-machine transitions
# 🔗 Dependencies:
# asyncio, Subscription/PaymentHistoryRecord domain models, shared exceptions, structured logging
# 🔄 Connected Modules / Calls From:
# engine.py (creation, transitions, queries), payment_processor.py (locks, history),
# scheduler sweep (billable schedule), analytics_aggregator.py (snapshots)

import asyncio
from typing import Callable, Dict, Iterator, List, Optional, Tuple
from datetime import datetime

from recurring_billing.shared.core.exceptions import (
    BillingEngineException,
    InvalidStateTransitionError,
    SubscriptionNotFoundError,
    ValidationError,
)
from recurring_billing.shared.utils.helpers import Clock, utc_now
from recurring_billing.shared.utils.logging import get_logger

from ..models.payment_history import PaymentHistoryRecord
from ..models.subscription import BILLABLE_STATUSES, Subscription, SubscriptionStatus

logger = get_logger(__name__)


class OperationResult:
    """
    Outcome of a state-changing operation.

    Truthy on success so callers can branch on it like a boolean; on
    failure it carries the error explaining why.
    """

    def __init__(
        self,
        success: bool,
        subscription: Optional[Subscription] = None,
        error: Optional[BillingEngineException] = None
    ):
        self.success = success
        self.subscription = subscription
        self.error = error

    @classmethod
    def ok(cls, subscription: Subscription) -> "OperationResult":
        return cls(True, subscription=subscription)

    @classmethod
    def failed(cls, error: BillingEngineException) -> "OperationResult":
        return cls(False, error=error)

    @property
    def error_code(self) -> Optional[str]:
        return self.error.error_code if self.error else None

    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None

    def __bool__(self) -> bool:
        return self.success

    def __repr__(self) -> str:
        if self.success:
            return f"OperationResult(success=True, subscription={self.subscription.id!r})"
        return f"OperationResult(success=False, error_code={self.error_code!r})"


class SubscriptionStore:
    """
    Owner of all subscription records and their payment history.

    Records are never deleted. Every mutation of a record happens while
    holding that record's lock, which the payment processor also holds for
    the whole duration of a billing attempt.
    """

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock
        self._subscriptions: Dict[str, Subscription] = {}
        self._history: Dict[str, List[PaymentHistoryRecord]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    # =========================================================================
    # RECORDS
    # =========================================================================

    def add(self, subscription: Subscription) -> Subscription:
        if subscription.id in self._subscriptions:
            raise ValidationError(
                "Subscription id already in use",
                field="id",
                value=subscription.id
            )
        self._subscriptions[subscription.id] = subscription
        self._history[subscription.id] = []
        return subscription

    def get(self, subscription_id: str) -> Optional[Subscription]:
        return self._subscriptions.get(subscription_id)

    def require(self, subscription_id: str) -> Subscription:
        subscription = self._subscriptions.get(subscription_id)
        if subscription is None:
            raise SubscriptionNotFoundError(subscription_id)
        return subscription

    def lock_for(self, subscription_id: str) -> asyncio.Lock:
        """Lock serializing all work on one subscription."""
        lock = self._locks.get(subscription_id)
        if lock is None:
            lock = self._locks[subscription_id] = asyncio.Lock()
        return lock

    def __iter__(self) -> Iterator[Subscription]:
        return iter(list(self._subscriptions.values()))

    def __len__(self) -> int:
        return len(self._subscriptions)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def all(self) -> List[Subscription]:
        return list(self._subscriptions.values())

    def by_customer(self, customer_id: str) -> List[Subscription]:
        return [s for s in self._subscriptions.values() if s.customer_id == customer_id]

    def by_status(self, *statuses: SubscriptionStatus) -> List[Subscription]:
        return [s for s in self._subscriptions.values() if s.status in statuses]

    def billable_schedule(self) -> List[Tuple[str, datetime]]:
        """(id, due time) for every subscription that is active or awaiting a retry."""
        return [
            (s.id, s.next_payment_date)
            for s in self._subscriptions.values()
            if s.status in BILLABLE_STATUSES and s.next_payment_date is not None
        ]

    # =========================================================================
    # PAYMENT HISTORY
    # =========================================================================

    def append_history(self, record: PaymentHistoryRecord) -> None:
        self.require(record.subscription_id)
        self._history[record.subscription_id].append(record)

    def history(self, subscription_id: str) -> List[PaymentHistoryRecord]:
        return list(self._history.get(subscription_id, ()))

    def all_history(self) -> List[PaymentHistoryRecord]:
        return [record for records in self._history.values() for record in records]

    # =========================================================================
    # STATE TRANSITIONS
    # =========================================================================

    async def pause(self, subscription_id: str) -> OperationResult:
        """active → paused"""
        return await self._transition(subscription_id, "pause", lambda s, now: s.pause(now))

    async def resume(self, subscription_id: str) -> OperationResult:
        """paused → active; the existing next_payment_date is kept"""
        return await self._transition(subscription_id, "resume", lambda s, now: s.resume(now))

    async def cancel(self, subscription_id: str, reason: Optional[str] = None) -> OperationResult:
        """active|paused|failed → cancelled (terminal)"""
        return await self._transition(
            subscription_id, "cancel", lambda s, now: s.cancel(now, reason), reason=reason
        )

    async def update_amount(self, subscription_id: str, new_amount) -> OperationResult:
        """Change the amount of an active subscription; the schedule is untouched."""
        return await self._transition(
            subscription_id,
            "update_amount",
            lambda s, now: s.change_amount(new_amount, now),
            new_amount=str(new_amount)
        )

    async def _transition(
        self,
        subscription_id: str,
        operation: str,
        apply: Callable[[Subscription, datetime], None],
        **log_fields
    ) -> OperationResult:
        subscription = self._subscriptions.get(subscription_id)
        if subscription is None:
            logger.info(f"Rejected {operation}: unknown subscription {subscription_id}")
            return OperationResult.failed(SubscriptionNotFoundError(subscription_id))

        async with self.lock_for(subscription_id):
            try:
                apply(subscription, self._clock())
            except (InvalidStateTransitionError, ValidationError) as e:
                logger.info(
                    f"Rejected {operation} for {subscription_id}: {e.message}",
                    subscription_id=subscription_id,
                    error_code=e.error_code
                )
                return OperationResult.failed(e)

        logger.log_billing_event(
            operation,
            f"Subscription {subscription_id} {operation} -> {subscription.status.value}",
            subscription_id=subscription_id,
            extra=log_fields
        )
        return OperationResult.ok(subscription)
