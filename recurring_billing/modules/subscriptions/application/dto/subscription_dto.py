# 📄 File: recurring_billing/modules/subscriptions/application/dto/subscription_dto.py
# 🧭 Purpose (Layman Explanation):
# Defines the forms a caller fills in to sign a customer up - either with custom terms
# or by picking one of the ready-made plans.
#
# 🧪 Purpose (Technical Summary):
# Request data transfer objects validating subscription creation input before it reaches
# the domain layer, with conversion helpers to plain dicts and from loosely-typed input.
#
# 🔗 Dependencies:
# - pydantic for DTO validation and serialization (EmailStr via email-validator)
# - recurring_billing.modules.subscriptions.domain.models (Frequency, PaymentMethod)
#
# 🔄 Connected Modules / Calls From:
# - recurring_billing.engine (create_recurring_payment, create_subscription_from_plan)

"""
Subscription Data Transfer Objects (DTOs)

DTO Classes:
- CreateRecurringPaymentRequest: Input for a subscription with custom terms
- CustomerDetails: Customer identity used when subscribing to a plan

Both accept plain dicts through `coerce`, so callers may pass either the
DTO or its dictionary form.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from ...domain.models.plan import Frequency, normalize_currency
from ...domain.models.subscription import PaymentMethod

DTO = TypeVar("DTO", bound="_RequestDTO")


class _RequestDTO(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    @classmethod
    def coerce(cls: Type[DTO], value: Union[DTO, Dict[str, Any]]) -> DTO:
        """Accept the DTO itself or its dictionary form."""
        if isinstance(value, cls):
            return value
        return cls.model_validate(value)


class CreateRecurringPaymentRequest(_RequestDTO):
    """
    Input for creating a subscription with custom terms.

    start_date defaults to the engine clock's "now" when omitted.
    """

    customer_id: str = Field(
        ...,
        min_length=1,
        description="Customer identifier",
        examples=["cust_123"]
    )
    customer_name: str = Field(
        ...,
        min_length=1,
        description="Customer display name",
        examples=["Ada Lovelace"]
    )
    customer_email: EmailStr = Field(
        ...,
        description="Customer email address",
        examples=["ada@example.com"]
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount charged per billing period",
        examples=["19.99"]
    )
    currency: str = Field(
        default="USD",
        description="Currency code",
        examples=["USD", "BTC"]
    )
    description: str = Field(default="", description="Free-form description")
    frequency: Frequency = Field(..., description="Billing frequency")
    start_date: Optional[datetime] = Field(default=None, description="Billing period start")
    end_date: Optional[datetime] = Field(default=None, description="No charge is scheduled after this date")
    payment_method: PaymentMethod = Field(default=PaymentMethod.BITCOIN, description="Payment rail")
    max_payments: Optional[int] = Field(default=None, ge=1, description="Stop after this many successful charges")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Caller-defined metadata")

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency(v)


class CustomerDetails(_RequestDTO):
    """Customer identity and payment rail for a plan-based subscription."""

    customer_id: str = Field(..., min_length=1, examples=["cust_123"])
    customer_name: str = Field(..., min_length=1, examples=["Ada Lovelace"])
    customer_email: EmailStr = Field(..., examples=["ada@example.com"])
    payment_method: PaymentMethod = PaymentMethod.BITCOIN
    start_date: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
