# 📄 File: recurring_billing/modules/subscriptions/infrastructure/gateway/http_gateway.py

# 🧭 Purpose (Layman Explanation):
# Talks to the payment provider over the internet to actually charge customers, trying again when the
# connection hiccups and backing off completely when the provider seems to be down.

# 🧪 Purpose (Technical Summary):
# Async HTTP PaymentGateway implementation with idempotent charge requests, tenacity-driven retries for
# transport errors and 5xx responses, circuit breaker protection, and call timing/statistics.

# 🔗 Dependencies:
# - aiohttp: Async HTTP client
# - tenacity: Retry logic and backoff strategies
# - circuit_breaker: Fail-fast protection

# 🔄 Connected Modules / Calls From:
# Used by: engine.py (default gateway built from settings), payment_processor.py (charge attempts)

import asyncio
import logging
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

import aiohttp
from aiohttp import ClientSession, ClientTimeout
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from recurring_billing.shared.config.settings import Settings
from recurring_billing.shared.core.exceptions import GatewayError
from recurring_billing.shared.utils.logging import get_logger

from ...domain.models.subscription import PaymentMethod
from .base import GatewayOutcome, PaymentGateway
from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig

logger = get_logger(__name__)


class _ServerError(Exception):
    """5xx response; retried like a transport failure."""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"Gateway server error ({status}): {body[:200]}")


_RETRYABLE = (aiohttp.ClientError, asyncio.TimeoutError, _ServerError)


class HTTPPaymentGateway(PaymentGateway):
    """
    Payment gateway client speaking JSON over HTTP.

    Contract with the provider:
    - POST {base_url}/payments with the charge as JSON
    - 2xx with {"status": "succeeded"} is a successful charge
    - 4xx, or 2xx with any other status, is a decline
    - 5xx, timeouts and connection errors are retried, then raised as GatewayError
    """

    name = "http"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 2,
        retry_backoff: float = 1.0,
        circuit_breaker: Optional[CircuitBreaker] = None,
        session: Optional[ClientSession] = None
    ):
        """Initialize gateway client with configuration."""
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.circuit_breaker = circuit_breaker or CircuitBreaker(f"gateway:{self.base_url}")

        self.session = session
        self._owns_session = session is None

        # Performance tracking
        self.stats = {
            'total_requests': 0,
            'approved': 0,
            'declined': 0,
            'transport_errors': 0,
            'average_response_time': 0.0,
            'last_request_time': None,
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> "HTTPPaymentGateway":
        breaker = CircuitBreaker(
            "payment-gateway",
            CircuitBreakerConfig(
                failure_threshold=settings.GATEWAY_CIRCUIT_FAILURE_THRESHOLD,
                recovery_timeout_seconds=settings.GATEWAY_CIRCUIT_RECOVERY_SECONDS,
            )
        )
        return cls(
            base_url=settings.GATEWAY_BASE_URL,
            api_key=settings.GATEWAY_API_KEY,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
            max_retries=settings.GATEWAY_MAX_RETRIES,
            retry_backoff=settings.GATEWAY_RETRY_BACKOFF_SECONDS,
            circuit_breaker=breaker,
        )

    def _get_default_headers(self) -> Dict[str, str]:
        headers = {
            'Accept': 'application/json',
            'User-Agent': 'recurring-billing-engine/1.0',
        }
        if self.api_key:
            headers['Authorization'] = f'Bearer {self.api_key}'
        return headers

    async def initialize(self):
        """Create the client session if none was supplied."""
        if self.session is None or self.session.closed:
            self.session = ClientSession(
                timeout=ClientTimeout(total=self.timeout),
                headers=self._get_default_headers()
            )
            self._owns_session = True
            logger.info(f"Payment gateway client initialized for {self.base_url}")

    async def attempt(
        self,
        amount: Decimal,
        currency: str,
        method: PaymentMethod,
        payee: str,
        reference: Optional[str] = None
    ) -> GatewayOutcome:
        payload = {
            'amount': str(amount),
            'currency': currency,
            'payment_method': method.value if isinstance(method, PaymentMethod) else str(method),
            'payee': payee,
            'reference': reference,
        }
        return await self.circuit_breaker.call(self._send_with_retry, payload, reference)

    async def _send_with_retry(self, payload: Dict[str, Any], reference: Optional[str]) -> GatewayOutcome:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_backoff, max=max(self.retry_backoff * 8, 0)),
            retry=retry_if_exception_type(_RETRYABLE),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._post(payload, reference)
        except _ServerError as e:
            self.stats['transport_errors'] += 1
            raise GatewayError(str(e), gateway=self.name, status_code=e.status) from e
        except asyncio.TimeoutError as e:
            self.stats['transport_errors'] += 1
            raise GatewayError(
                f"Gateway timed out after {self.timeout}s", gateway=self.name
            ) from e
        except aiohttp.ClientError as e:
            self.stats['transport_errors'] += 1
            raise GatewayError(f"Gateway connection error: {e}", gateway=self.name) from e

    async def _post(self, payload: Dict[str, Any], reference: Optional[str]) -> GatewayOutcome:
        if self.session is None or self.session.closed:
            await self.initialize()

        headers = self._get_default_headers()
        if reference:
            headers['Idempotency-Key'] = reference

        url = f"{self.base_url}/payments"
        start_time = time.time()

        async with self.session.post(url, json=payload, headers=headers) as response:
            duration_ms = (time.time() - start_time) * 1000
            self._track(duration_ms)

            if response.status >= 500:
                body = await response.text()
                logger.log_gateway_call(self.name, 'charge', False, duration_ms, response.status)
                raise _ServerError(response.status, body)

            body = await self._read_body(response)
            status = str(body.get('status', '')).lower()

            if 200 <= response.status < 300 and status == 'succeeded':
                self.stats['approved'] += 1
                logger.log_gateway_call(self.name, 'charge', True, duration_ms, response.status)
                return GatewayOutcome.succeeded(
                    transaction_id=body.get('transaction_id') or body.get('id'),
                    status=status,
                    status_code=response.status
                )

            self.stats['declined'] += 1
            error = self._error_message(body, response.status)
            logger.log_gateway_call(
                self.name, 'charge', False, duration_ms, response.status, extra={'error': error}
            )
            return GatewayOutcome.declined(error, status=status, status_code=response.status)

    @staticmethod
    async def _read_body(response: aiohttp.ClientResponse) -> Dict[str, Any]:
        try:
            body = await response.json(content_type=None)
        except ValueError:
            return {'error': await response.text()}
        return body if isinstance(body, dict) else {'data': body}

    @staticmethod
    def _error_message(body: Dict[str, Any], status_code: int) -> str:
        error = body.get('error') or body.get('message')
        if isinstance(error, dict):
            error = error.get('message') or error.get('code')
        if error:
            return str(error)
        if body.get('status'):
            return f"Payment {body['status']}"
        return f"Payment declined ({status_code})"

    def _track(self, duration_ms: float):
        self.stats['total_requests'] += 1
        self.stats['last_request_time'] = datetime.now(timezone.utc).isoformat()
        if self.stats['average_response_time'] == 0:
            self.stats['average_response_time'] = duration_ms
        else:
            self.stats['average_response_time'] = (
                self.stats['average_response_time'] * 0.7 + duration_ms * 0.3
            )

    def get_stats(self) -> Dict[str, Any]:
        """Get client performance statistics."""
        return {
            **self.stats,
            'gateway': self.name,
            'base_url': self.base_url,
            'circuit_breaker': self.circuit_breaker.get_stats(),
        }

    async def close(self):
        """Close the client session and cleanup resources."""
        if self.session is not None and self._owns_session:
            await self.session.close()
        self.session = None
        logger.info(f"Payment gateway client closed for {self.base_url}")
