# 📄 File: recurring_billing/modules/subscriptions/domain/models/__init__.py
# 🧭 Purpose (Layman Explanation):
# Organizes the core billing data models - plans, subscriptions, payment receipts and the analytics report
# 🧪 Purpose (Technical Summary):
# Package initialization for domain models containing SubscriptionPlan, Subscription,
# PaymentHistoryRecord and AnalyticsSnapshot with their enums
# 🔗 Dependencies:
# Domain model classes, enums, pydantic base models
# 🔄 Connected Modules / Calls From:
# Domain services, application DTOs, engine façade

"""
Subscription Domain Models

Models:
- SubscriptionPlan: Reusable subscription template
- Subscription: One customer's recurring payment with its state machine
- PaymentHistoryRecord: Append-only record of a billing attempt
- AnalyticsSnapshot: Derived portfolio metrics

Each model follows domain-driven design principles:
- Rich domain models with business logic
- Validation rules enforced at domain level
- Immutable value objects where appropriate
"""

from .plan import (
    Frequency,
    SubscriptionPlan,
    default_plans,
)

from .subscription import (
    BILLABLE_STATUSES,
    SCHEDULED_STATUSES,
    TERMINAL_STATUSES,
    PaymentMethod,
    Subscription,
    SubscriptionStatus,
)

from .payment_history import (
    PaymentHistoryRecord,
    PaymentOutcome,
)

from .analytics import AnalyticsSnapshot

__all__ = [
    # Plan entity and enums
    "Frequency",
    "SubscriptionPlan",
    "default_plans",

    # Subscription entity and enums
    "BILLABLE_STATUSES",
    "SCHEDULED_STATUSES",
    "TERMINAL_STATUSES",
    "PaymentMethod",
    "Subscription",
    "SubscriptionStatus",

    # Payment history
    "PaymentHistoryRecord",
    "PaymentOutcome",

    # Analytics
    "AnalyticsSnapshot",
]
