import asyncio
from collections import deque
from decimal import Decimal

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from recurring_billing.modules.subscriptions.domain.models import PaymentMethod
from recurring_billing.modules.subscriptions.infrastructure.gateway import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    HTTPPaymentGateway,
)
from recurring_billing.shared.core.exceptions import CircuitOpenError, GatewayError

SUCCEEDED = (200, {"status": "succeeded", "transaction_id": "tx_abc"})


class ProviderStub:
    """Scripted payment provider: each entry is (status, body) or ("sleep", seconds)."""

    def __init__(self):
        self.responses = deque()
        self.requests = []

    async def payments(self, request: web.Request) -> web.Response:
        self.requests.append({
            "authorization": request.headers.get("Authorization"),
            "idempotency_key": request.headers.get("Idempotency-Key"),
            "json": await request.json(),
        })
        status, body = self.responses.popleft() if self.responses else SUCCEEDED
        if status == "sleep":
            await asyncio.sleep(body)
            status, body = SUCCEEDED
        return web.json_response(body, status=status)


@pytest.fixture
async def provider():
    stub = ProviderStub()
    app = web.Application()
    app.router.add_post("/api/v1/payments", stub.payments)
    server = TestServer(app)
    await server.start_server()
    stub.base_url = str(server.make_url("/api/v1"))
    yield stub
    await server.close()


def _gateway(provider, **overrides) -> HTTPPaymentGateway:
    options = {
        "base_url": provider.base_url,
        "api_key": "secret",
        "timeout": 1.0,
        "max_retries": 2,
        "retry_backoff": 0,
        "circuit_breaker": CircuitBreaker(
            "test-gateway", CircuitBreakerConfig(failure_threshold=2, recovery_timeout_seconds=60)
        ),
    }
    options.update(overrides)
    return HTTPPaymentGateway(**options)


async def _charge(gateway, reference="payment_hist_1"):
    return await gateway.attempt(
        Decimal("10.00"), "USD", PaymentMethod.BITCOIN, payee="cust_1", reference=reference
    )


async def test_approved_charge(provider):
    gateway = _gateway(provider)
    try:
        outcome = await _charge(gateway)
    finally:
        await gateway.close()

    assert outcome.success is True
    assert outcome.transaction_id == "tx_abc"
    sent = provider.requests[0]
    assert sent["authorization"] == "Bearer secret"
    assert sent["idempotency_key"] == "payment_hist_1"
    assert sent["json"] == {
        "amount": "10.00",
        "currency": "USD",
        "payment_method": "bitcoin",
        "payee": "cust_1",
        "reference": "payment_hist_1",
    }


async def test_client_error_is_a_decline_without_retry(provider):
    provider.responses.append((402, {"error": {"code": "insufficient_funds", "message": "Insufficient funds"}}))
    gateway = _gateway(provider)
    try:
        outcome = await _charge(gateway)
    finally:
        await gateway.close()

    assert outcome.success is False
    assert outcome.error == "Insufficient funds"
    assert len(provider.requests) == 1


async def test_non_succeeded_status_is_a_decline(provider):
    provider.responses.append((200, {"status": "pending"}))
    gateway = _gateway(provider)
    try:
        outcome = await _charge(gateway)
    finally:
        await gateway.close()

    assert outcome.success is False
    assert outcome.error == "Payment pending"


async def test_server_errors_are_retried(provider):
    provider.responses.extend([(503, {"error": "busy"}), (502, {"error": "bad gateway"})])
    gateway = _gateway(provider)
    try:
        outcome = await _charge(gateway)
    finally:
        await gateway.close()

    assert outcome.success is True
    assert len(provider.requests) == 3
    assert {r["idempotency_key"] for r in provider.requests} == {"payment_hist_1"}


async def test_persistent_server_error_raises_gateway_error(provider):
    provider.responses.extend([(500, {"error": "down"})] * 3)
    gateway = _gateway(provider)
    try:
        with pytest.raises(GatewayError) as exc_info:
            await _charge(gateway)
    finally:
        await gateway.close()

    assert exc_info.value.status_code == 500
    assert len(provider.requests) == 3


async def test_timeout_raises_gateway_error(provider):
    provider.responses.append(("sleep", 0.5))
    gateway = _gateway(provider, timeout=0.1, max_retries=0)
    try:
        with pytest.raises(GatewayError) as exc_info:
            await _charge(gateway)
    finally:
        await gateway.close()

    assert "timed out" in exc_info.value.message


async def test_circuit_opens_after_consecutive_failures(provider):
    provider.responses.extend([(500, {"error": "down"})] * 2)
    gateway = _gateway(provider, max_retries=0)
    try:
        for _ in range(2):
            with pytest.raises(GatewayError):
                await _charge(gateway)
        with pytest.raises(CircuitOpenError):
            await _charge(gateway)
    finally:
        await gateway.close()

    assert len(provider.requests) == 2
    assert gateway.circuit_breaker.state == CircuitState.OPEN


async def test_connection_error_raises_gateway_error():
    gateway = HTTPPaymentGateway(
        base_url="http://127.0.0.1:9/api/v1", timeout=0.5, max_retries=1, retry_backoff=0
    )
    try:
        with pytest.raises(GatewayError):
            await _charge(gateway)
    finally:
        await gateway.close()


class _Ticker:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


async def test_circuit_half_open_trial_closes_on_success():
    ticker = _Ticker()
    breaker = CircuitBreaker(
        "unit", CircuitBreakerConfig(failure_threshold=1, recovery_timeout_seconds=30), time_source=ticker
    )

    async def fail():
        raise GatewayError("down")

    async def ok():
        return "ok"

    with pytest.raises(GatewayError):
        await breaker.call(fail)
    assert breaker.state == CircuitState.OPEN

    with pytest.raises(CircuitOpenError):
        await breaker.call(ok)

    ticker.now = 31
    assert await breaker.call(ok) == "ok"
    assert breaker.state == CircuitState.CLOSED


async def test_circuit_ignores_unexpected_exceptions():
    breaker = CircuitBreaker("unit", CircuitBreakerConfig(failure_threshold=1))

    async def broken():
        raise KeyError("bug")

    with pytest.raises(KeyError):
        await breaker.call(broken)

    assert breaker.state == CircuitState.CLOSED
