"""
Subscription domain services.

Services:
- PlanCatalog: Registry of subscription plans
- SubscriptionStore: Subscription records, history, locks and state transitions
- PaymentScheduler: Due-time scheduling of billing attempts
- PaymentProcessor: Execution of one billing attempt
- AnalyticsAggregator: Portfolio metrics
"""

from .plan_catalog import PlanCatalog
from .subscription_store import OperationResult, SubscriptionStore
from .scheduler import PaymentScheduler
from .payment_processor import PaymentProcessor
from .analytics_aggregator import AnalyticsAggregator, monthly_value

__all__ = [
    "PlanCatalog",
    "OperationResult",
    "SubscriptionStore",
    "PaymentScheduler",
    "PaymentProcessor",
    "AnalyticsAggregator",
    "monthly_value",
]
