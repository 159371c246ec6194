"""
Shared fixtures: a controllable clock, a scripted gateway and engine wiring.
"""

import logging
from collections import deque
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest

from recurring_billing.engine import RecurringPaymentEngine
from recurring_billing.modules.subscriptions.domain.models import (
    Frequency,
    PaymentMethod,
    Subscription,
)
from recurring_billing.modules.subscriptions.infrastructure.gateway import (
    GatewayOutcome,
    PaymentGateway,
)
from recurring_billing.shared.config.settings import Settings
from recurring_billing.shared.utils import logging as billing_logging

START = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeGateway(PaymentGateway):
    """
    Gateway replaying scripted outcomes.

    Script entries are True (approve), False (decline), a GatewayOutcome,
    or an exception to raise. An empty script approves.
    """

    name = "fake"

    def __init__(self):
        self.script: deque = deque()
        self.calls: List[Dict[str, Any]] = []

    def queue(self, *outcomes) -> "FakeGateway":
        self.script.extend(outcomes)
        return self

    async def attempt(
        self,
        amount: Decimal,
        currency: str,
        method: PaymentMethod,
        payee: str,
        reference: Optional[str] = None
    ) -> GatewayOutcome:
        self.calls.append({
            "amount": amount,
            "currency": currency,
            "method": method,
            "payee": payee,
            "reference": reference,
        })
        step = self.script.popleft() if self.script else True
        if isinstance(step, BaseException):
            raise step
        if step is True:
            return GatewayOutcome.succeeded(transaction_id=f"tx_{len(self.calls)}")
        if step is False:
            return GatewayOutcome.declined("Insufficient funds")
        return step


def make_subscription(clock: FakeClock, **overrides) -> Subscription:
    terms = {
        "customer_id": "cust_1",
        "customer_name": "Ada Lovelace",
        "customer_email": "ada@example.com",
        "amount": Decimal("10.00"),
        "currency": "USD",
        "frequency": Frequency.MONTHLY,
        "payment_method": PaymentMethod.BITCOIN,
    }
    terms.update(overrides)
    start = terms.pop("start_date", clock())
    return Subscription.open(start, clock(), **terms)


@pytest.fixture(autouse=True)
def isolated_package_logger(monkeypatch):
    """Undo handlers installed by setup_logging so each test starts unconfigured."""
    package_logger = logging.getLogger(billing_logging.PACKAGE_LOGGER)
    handlers, level = package_logger.handlers[:], package_logger.level
    monkeypatch.setattr(billing_logging, "_logging_configured", False)
    yield package_logger
    for handler in package_logger.handlers[:]:
        if handler not in handlers:
            package_logger.removeHandler(handler)
            handler.close()
    package_logger.setLevel(level)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        SEED_DEFAULT_PLANS=False,
        LOG_FORMAT="text",
        SCHEDULER_SWEEP_INTERVAL_SECONDS=0.05,
        SCHEDULER_MAX_IDLE_SECONDS=0.05,
    )


@pytest.fixture
def engine(settings, gateway, clock) -> RecurringPaymentEngine:
    return RecurringPaymentEngine(settings=settings, gateway=gateway, clock=clock)


@pytest.fixture
def request_data() -> Dict[str, Any]:
    return {
        "customer_id": "cust_1",
        "customer_name": "Ada Lovelace",
        "customer_email": "ada@example.com",
        "amount": "10.00",
        "currency": "usd",
        "description": "Coffee club",
        "frequency": "monthly",
        "payment_method": "lightning",
    }
