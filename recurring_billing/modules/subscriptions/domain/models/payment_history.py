# 📄 File: recurring_billing/modules/subscriptions/domain/models/payment_history.py
# 🧭 Purpose (Layman Explanation):
# Defines the receipt-like record kept for every charge attempt, whether the money arrived or not
# 🧪 Purpose (Technical Summary):
# Append-only PaymentHistoryRecord value object and the PaymentOutcome enumeration
# 🔗 Dependencies:
# pydantic, decimal, datetime, typing, enum
# 🔄 Connected Modules / Calls From:
# payment_processor.py (creation), subscription_store.py (storage), analytics_aggregator.py

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from recurring_billing.shared.utils.helpers import generate_id, utc_now


class PaymentOutcome(str, Enum):
    """Outcome of one billing attempt"""
    SUCCESS = "success"
    FAILED = "failed"


class PaymentHistoryRecord(BaseModel):
    """One billing attempt. Never mutated once recorded."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: generate_id("payment_hist"))
    subscription_id: str
    amount: Decimal
    currency: str
    outcome: PaymentOutcome
    transaction_id: Optional[str] = None
    payment_date: datetime
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def succeeded(self) -> bool:
        return self.outcome == PaymentOutcome.SUCCESS
