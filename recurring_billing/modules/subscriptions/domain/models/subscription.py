# 📄 File: recurring_billing/modules/subscriptions/domain/models/subscription.py
# 🧭 Purpose (Layman Explanation):
# Defines a customer's recurring payment - how much they pay, how often, when the next charge is due,
# and whether the subscription is running, paused, cancelled, finished or struggling with failed charges
# 🧪 Purpose (Technical Summary):
# Domain model for the Subscription (recurring payment) entity implementing the billing state machine,
# schedule arithmetic and payment bookkeeping
# 🔗 Dependencies:
# pydantic, decimal, datetime, typing, enum
# 🔄 Connected Modules / Calls From:
# subscription_store.py, payment_processor.py, scheduler sweep, analytics_aggregator.py, engine.py

from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field, field_validator

from recurring_billing.shared.core.exceptions import InvalidStateTransitionError, ValidationError
from recurring_billing.shared.utils.helpers import ensure_utc, generate_id, to_decimal, utc_now

from .plan import Frequency, normalize_currency


class SubscriptionStatus(str, Enum):
    """Subscription status enumeration"""
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    FAILED = "failed"        # Last attempt failed, retry pending
    EXPIRED = "expired"      # Retry cap exhausted (only with a configured cap)


class PaymentMethod(str, Enum):
    """Payment method enumeration"""
    BITCOIN = "bitcoin"
    LIGHTNING = "lightning"


# Statuses that keep a next_payment_date
SCHEDULED_STATUSES = frozenset({
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.PAUSED,
    SubscriptionStatus.FAILED,
})

# Statuses in which a billing attempt may run
BILLABLE_STATUSES = frozenset({
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.FAILED,
})

TERMINAL_STATUSES = frozenset({
    SubscriptionStatus.CANCELLED,
    SubscriptionStatus.COMPLETED,
    SubscriptionStatus.EXPIRED,
})


class Subscription(BaseModel):
    """
    Subscription domain model representing one customer's recurring payment obligation.

    Invariants maintained by the business methods below:
    - current_payments never exceeds max_payments
    - total_collected equals the sum of successful charges
    - next_payment_date is set exactly while the status is active, paused or failed
    """

    model_config = ConfigDict(validate_assignment=True)

    # Identity
    id: str = Field(default_factory=lambda: generate_id("recurring"))

    # Customer
    customer_id: str = Field(min_length=1)
    customer_name: str
    customer_email: EmailStr

    # Terms
    amount: Decimal = Field(gt=0)
    currency: str
    description: str = ""
    frequency: Frequency
    payment_method: PaymentMethod
    max_payments: Optional[int] = Field(None, ge=1)
    plan_id: Optional[str] = None

    # Schedule
    start_date: datetime
    end_date: Optional[datetime] = None
    next_payment_date: Optional[datetime] = None
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE

    # Payment tracking
    current_payments: int = Field(0, ge=0)
    total_collected: Decimal = Decimal("0")
    last_payment_date: Optional[datetime] = None
    consecutive_failures: int = Field(0, ge=0)

    # Metadata
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @computed_field
    @property
    def interval(self) -> int:
        """Days between two charges."""
        return self.frequency.interval_days

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency(v)

    @field_validator(
        "start_date", "end_date", "next_payment_date", "last_payment_date", "created_at", "updated_at"
    )
    @classmethod
    def validate_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    # Factory

    @classmethod
    def open(cls, start_date: datetime, now: datetime, **terms: Any) -> "Subscription":
        """
        Create an active subscription whose first charge is due one interval after start.

        Raises:
            ValidationError: If end_date precedes start_date or the first charge
                would fall after end_date
        """
        subscription = cls(start_date=start_date, created_at=now, updated_at=now, **terms)

        if subscription.end_date and subscription.end_date < subscription.start_date:
            raise ValidationError(
                "End date must not precede start date",
                field="end_date",
                value=subscription.end_date.isoformat()
            )

        first_due = subscription.next_due_after(subscription.start_date)
        if first_due is None:
            raise ValidationError(
                "First billing date falls after the end date",
                field="end_date",
                value=subscription.end_date.isoformat()
            )

        subscription.next_payment_date = first_due
        return subscription

    # Queries

    @property
    def is_billable(self) -> bool:
        return self.status in BILLABLE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def payments_remaining(self) -> Optional[int]:
        if self.max_payments is None:
            return None
        return max(0, self.max_payments - self.current_payments)

    def next_due_after(self, from_date: datetime) -> Optional[datetime]:
        """
        Due date one interval after from_date.

        Returns:
            The next due date, or None when it would fall after end_date
        """
        due = from_date + timedelta(days=self.interval)
        if self.end_date and due > self.end_date:
            return None
        return due

    # State transitions

    def pause(self, now: datetime) -> None:
        self._require(SubscriptionStatus.ACTIVE, "pause")
        self.status = SubscriptionStatus.PAUSED
        self.updated_at = now

    def resume(self, now: datetime) -> None:
        self._require(SubscriptionStatus.PAUSED, "resume")
        self.status = SubscriptionStatus.ACTIVE
        self.updated_at = now

    def cancel(self, now: datetime, reason: Optional[str] = None) -> None:
        """
        Cancel the subscription. Terminal.

        Args:
            now: Transition time
            reason: Optional cancellation reason kept in metadata
        """
        if self.is_terminal:
            raise self._transition_error("cancel")

        self.status = SubscriptionStatus.CANCELLED
        self.next_payment_date = None
        if reason:
            self.metadata = {**self.metadata, "cancellation_reason": reason}
        self.updated_at = now

    def change_amount(self, new_amount: Decimal, now: datetime) -> None:
        """
        Change the amount charged from the next attempt on. Schedule is untouched.

        Raises:
            ValidationError: If the amount is not positive
            InvalidStateTransitionError: If the subscription is not active
        """
        amount = to_decimal(new_amount)
        if amount is None or amount <= 0:
            raise ValidationError("Amount must be positive", field="amount", value=new_amount)
        self._require(SubscriptionStatus.ACTIVE, "update_amount")
        self.amount = amount
        self.updated_at = now

    # Payment bookkeeping

    def record_successful_payment(self, amount: Decimal, paid_at: datetime) -> bool:
        """
        Apply a successful charge.

        Args:
            amount: Amount actually charged
            paid_at: Payment date

        Returns:
            True if the subscription completed with this payment
        """
        self.current_payments += 1
        self.total_collected += amount
        self.last_payment_date = paid_at
        self.consecutive_failures = 0
        self.updated_at = paid_at

        next_due = self.next_due_after(paid_at)
        if self.payments_remaining == 0 or next_due is None:
            self.status = SubscriptionStatus.COMPLETED
            self.next_payment_date = None
            return True

        self.status = SubscriptionStatus.ACTIVE
        self.next_payment_date = next_due
        return False

    def record_failed_payment(self, failed_at: datetime, retry_at: datetime) -> None:
        """Apply a failed charge and point next_payment_date at the retry."""
        self.consecutive_failures += 1
        self.status = SubscriptionStatus.FAILED
        self.next_payment_date = retry_at
        self.updated_at = failed_at

    def expire(self, now: datetime) -> None:
        """Give up on a failing subscription. Terminal."""
        self._require(SubscriptionStatus.FAILED, "expire")
        self.status = SubscriptionStatus.EXPIRED
        self.next_payment_date = None
        self.updated_at = now

    # Helpers

    def _require(self, expected: SubscriptionStatus, operation: str) -> None:
        if self.status != expected:
            raise self._transition_error(operation)

    def _transition_error(self, operation: str) -> InvalidStateTransitionError:
        return InvalidStateTransitionError(
            f"Cannot {operation} subscription in status '{self.status.value}'",
            subscription_id=self.id,
            current_status=self.status.value,
            operation=operation
        )
