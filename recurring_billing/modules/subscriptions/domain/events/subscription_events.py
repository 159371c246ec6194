# 📄 File: recurring_billing/modules/subscriptions/domain/events/subscription_events.py
# 🧭 Purpose (Layman Explanation):
# Defines the announcements the billing engine makes when something happens to a subscription -
# a customer signs up, pauses, gets charged, or a charge fails - so other parts can react
# 🧪 Purpose (Technical Summary):
# Domain event types and factory helpers for subscription lifecycle and payment events
# published on the shared event bus
# 🔗 Dependencies:
# enum, typing, recurring_billing.shared.core.event_bus
# 🔄 Connected Modules / Calls From:
# engine.py (lifecycle events), payment_processor.py (payment events), event subscribers

from enum import Enum
from typing import Any, Optional

from recurring_billing.shared.core.event_bus import DomainEvent

from ..models.payment_history import PaymentHistoryRecord
from ..models.subscription import Subscription


class SubscriptionEventType(str, Enum):
    """Event types published by the billing engine"""
    CREATED = "subscription.created"
    PAUSED = "subscription.paused"
    RESUMED = "subscription.resumed"
    CANCELLED = "subscription.cancelled"
    AMOUNT_UPDATED = "subscription.amount_updated"
    COMPLETED = "subscription.completed"
    EXPIRED = "subscription.expired"
    PAYMENT_SUCCEEDED = "payment.succeeded"
    PAYMENT_FAILED = "payment.failed"
    RETRY_SCHEDULED = "payment.retry_scheduled"


def subscription_event(
    event_type: SubscriptionEventType,
    subscription: Subscription,
    **data: Any
) -> DomainEvent:
    """
    Build a lifecycle event for a subscription.

    The payload always carries the status and customer; extra keyword
    arguments are added to it.
    """
    payload = {
        "status": subscription.status.value,
        "customer_id": subscription.customer_id,
        **data,
    }
    return DomainEvent(
        event_type=event_type.value,
        aggregate_id=subscription.id,
        data=payload,
        timestamp=subscription.updated_at,
    )


def payment_event(
    subscription: Subscription,
    record: PaymentHistoryRecord,
    retry_at: Optional[str] = None
) -> DomainEvent:
    """Build a payment.succeeded or payment.failed event from a history record."""
    event_type = (
        SubscriptionEventType.PAYMENT_SUCCEEDED if record.succeeded
        else SubscriptionEventType.PAYMENT_FAILED
    )
    data = {
        "payment_id": record.id,
        "amount": str(record.amount),
        "currency": record.currency,
        "transaction_id": record.transaction_id,
        "error_message": record.error_message,
        "current_payments": subscription.current_payments,
        "total_collected": str(subscription.total_collected),
    }
    if retry_at:
        data["retry_at"] = retry_at

    event = subscription_event(event_type, subscription, **data)
    event.set_correlation_id(record.id)
    return event
