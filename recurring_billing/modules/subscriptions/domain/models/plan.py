# 📄 File: recurring_billing/modules/subscriptions/domain/models/plan.py
# 🧭 Purpose (Layman Explanation):
# Defines billing plans - reusable price tags like "Basic Monthly for 9.99 USD" that customers can sign up for
# 🧪 Purpose (Technical Summary):
# Domain model for the SubscriptionPlan template and the billing Frequency enumeration with its day intervals
# 🔗 Dependencies:
# pydantic, decimal, datetime, typing, enum
# 🔄 Connected Modules / Calls From:
# plan_catalog.py, subscription.py, engine.py (plan-based subscriptions and default plans)

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from recurring_billing.shared.utils.helpers import ensure_utc, utc_now


class Frequency(str, Enum):
    """Billing frequency enumeration"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @property
    def interval_days(self) -> int:
        """Days between two charges at this frequency."""
        return _INTERVAL_DAYS[self]


_INTERVAL_DAYS = {
    Frequency.DAILY: 1,
    Frequency.WEEKLY: 7,
    Frequency.MONTHLY: 30,
    Frequency.QUARTERLY: 90,
    Frequency.YEARLY: 365,
}


def normalize_currency(value: str) -> str:
    """Currency codes are stored upper-case without surrounding whitespace."""
    code = value.strip().upper()
    if not code:
        raise ValueError("Currency is required")
    return code


class SubscriptionPlan(BaseModel):
    """
    Reusable subscription template.

    Plans are immutable once created. The catalog deactivates a plan by
    replacing it with a copy whose is_active flag is cleared.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str
    description: str = ""
    amount: Decimal = Field(gt=0)
    currency: str = "USD"
    frequency: Frequency
    max_payments: Optional[int] = Field(None, ge=1)
    trial_period: Optional[int] = Field(None, ge=0, description="Trial length in days")
    features: List[str] = Field(default_factory=list)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)

    @computed_field
    @property
    def interval(self) -> int:
        """Days equivalent of the plan frequency."""
        return self.frequency.interval_days

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency(v)

    @field_validator("created_at")
    @classmethod
    def validate_created_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)


def default_plans() -> List[SubscriptionPlan]:
    """Built-in plans registered when the engine seeds its catalog."""
    return [
        SubscriptionPlan(
            id="basic_monthly",
            name="Basic Monthly",
            description="Perfect for individuals getting started",
            amount=Decimal("9.99"),
            currency="USD",
            frequency=Frequency.MONTHLY,
            features=["Basic features", "Email support", "Mobile app access"],
        ),
        SubscriptionPlan(
            id="premium_monthly",
            name="Premium Monthly",
            description="Advanced features for power users",
            amount=Decimal("19.99"),
            currency="USD",
            frequency=Frequency.MONTHLY,
            features=["All basic features", "Priority support", "Advanced analytics", "API access"],
        ),
        SubscriptionPlan(
            id="business_monthly",
            name="Business Monthly",
            description="Complete solution for businesses",
            amount=Decimal("49.99"),
            currency="USD",
            frequency=Frequency.MONTHLY,
            features=["All premium features", "Team management", "Custom integrations", "Dedicated support"],
        ),
        SubscriptionPlan(
            id="basic_yearly",
            name="Basic Yearly",
            description="Basic plan with annual discount",
            amount=Decimal("99.99"),
            currency="USD",
            frequency=Frequency.YEARLY,
            features=["All basic features", "Email support", "Mobile app access", "2 months free"],
        ),
    ]
