"""
Subscription request DTOs.
"""

from .subscription_dto import CreateRecurringPaymentRequest, CustomerDetails

__all__ = [
    "CreateRecurringPaymentRequest",
    "CustomerDetails",
]
