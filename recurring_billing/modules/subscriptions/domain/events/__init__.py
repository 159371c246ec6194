"""
Subscription domain events.
"""

from .subscription_events import (
    SubscriptionEventType,
    payment_event,
    subscription_event,
)

__all__ = [
    "SubscriptionEventType",
    "payment_event",
    "subscription_event",
]
