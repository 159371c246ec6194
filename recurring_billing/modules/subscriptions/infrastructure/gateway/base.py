# 📄 File: recurring_billing/modules/subscriptions/infrastructure/gateway/base.py
# 🧭 Purpose (Layman Explanation):
# Describes what any payment provider must be able to do for the billing engine: try to move money
# and say whether it worked
# 🧪 Purpose (Technical Summary):
# Abstract PaymentGateway contract and the GatewayOutcome value object returned by a charge attempt
# 🔗 Dependencies:
# abc, decimal, pydantic
# 🔄 Connected Modules / Calls From:
# payment_processor.py (consumer), http_gateway.py (implementation), test fakes

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ...domain.models.subscription import PaymentMethod


class GatewayOutcome(BaseModel):
    """Result of one charge attempt as reported by the gateway."""

    model_config = ConfigDict(frozen=True)

    success: bool
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def succeeded(cls, transaction_id: Optional[str] = None, **raw: Any) -> "GatewayOutcome":
        return cls(success=True, transaction_id=transaction_id, raw=raw)

    @classmethod
    def declined(cls, error: str, **raw: Any) -> "GatewayOutcome":
        return cls(success=False, error=error, raw=raw)


class PaymentGateway(ABC):
    """
    Capability that moves money.

    Implementations return a declined outcome for payments the provider
    refused and raise for transport-level problems; the processor records
    both as failed attempts.
    """

    name: str = "gateway"

    @abstractmethod
    async def attempt(
        self,
        amount: Decimal,
        currency: str,
        method: PaymentMethod,
        payee: str,
        reference: Optional[str] = None
    ) -> GatewayOutcome:
        """Charge amount in currency to the customer identified by payee."""
        pass

    async def close(self) -> None:
        """Release any resources held by the gateway."""
        return None
