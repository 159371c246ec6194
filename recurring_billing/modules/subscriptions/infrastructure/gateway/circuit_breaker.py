# 📄 File: recurring_billing/modules/subscriptions/infrastructure/gateway/circuit_breaker.py
# 🧭 Purpose (Layman Explanation):
# Works like an electrical circuit breaker for the payment provider - when it keeps failing, the engine
# stops calling it for a while instead of hammering a service that is down
# 🧪 Purpose (Technical Summary):
# Circuit Breaker pattern for the payment gateway: consecutive-failure trip threshold, fail-fast while
# OPEN, single trial call in HALF_OPEN after the recovery timeout, and state-change bookkeeping
# 🔗 Dependencies:
# time, enum, dataclasses, collections, logging
# 🔄 Connected Modules / Calls From:
# http_gateway.py

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type

from recurring_billing.shared.core.exceptions import CircuitOpenError, GatewayError

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states"""
    CLOSED = "closed"        # Normal operation, requests flow through
    OPEN = "open"            # Circuit tripped, requests fail fast
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior"""
    # Consecutive failures that trip the circuit
    failure_threshold: int = 5

    # Seconds to stay OPEN before allowing a trial call
    recovery_timeout_seconds: float = 60.0

    # Exceptions that count as failures; anything else passes through untouched
    expected_exceptions: Tuple[Type[BaseException], ...] = field(default_factory=lambda: (GatewayError,))


class CircuitBreaker:
    """
    Circuit breaker guarding calls to one external service.

    Implements the three states: CLOSED -> OPEN -> HALF_OPEN -> CLOSED
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        time_source: Callable[[], float] = time.monotonic
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._time = time_source
        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.opened_at = 0.0
        self._trial_in_progress = False
        self.state_changes: deque = deque(maxlen=100)
        self.stats = {
            'total_calls': 0,
            'failed_calls': 0,
            'rejected_calls': 0,
        }

        logger.info(f"Circuit breaker '{name}' initialized in CLOSED state")

    def _retry_after(self) -> float:
        return max(0.0, self.config.recovery_timeout_seconds - (self._time() - self.opened_at))

    def _transition_to_state(self, new_state: CircuitState, reason: str):
        """Transition circuit breaker to new state"""
        old_state = self.state
        self.state = new_state
        if new_state == CircuitState.OPEN:
            self.opened_at = self._time()
        self._trial_in_progress = False

        self.state_changes.append({
            'timestamp': time.time(),
            'old_state': old_state.value,
            'new_state': new_state.value,
            'reason': reason
        })
        logger.info(
            f"Circuit breaker '{self.name}' transitioned from {old_state.value} to {new_state.value}: {reason}"
        )

    def _record_success(self):
        self.consecutive_failures = 0
        if self.state == CircuitState.HALF_OPEN:
            self._transition_to_state(CircuitState.CLOSED, "Successful recovery verified")

    def _record_failure(self, error: BaseException):
        self.stats['failed_calls'] += 1
        self.consecutive_failures += 1

        if self.state == CircuitState.HALF_OPEN:
            # Any failure in half-open state trips the circuit
            self._transition_to_state(CircuitState.OPEN, f"Failure during recovery test: {error}")
        elif (
            self.state == CircuitState.CLOSED
            and self.consecutive_failures >= self.config.failure_threshold
        ):
            self._transition_to_state(
                CircuitState.OPEN,
                f"{self.consecutive_failures} consecutive failures"
            )

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Execute a function call through the circuit breaker

        Args:
            func: Async function to call
            *args: Function arguments
            **kwargs: Function keyword arguments

        Returns:
            Function result

        Raises:
            CircuitOpenError: When circuit is open
            Original exception: When call fails
        """
        # Check if we should transition from OPEN to HALF_OPEN
        if self.state == CircuitState.OPEN and self._retry_after() <= 0:
            self._transition_to_state(CircuitState.HALF_OPEN, "Attempting recovery")

        if self.state == CircuitState.OPEN or (
            self.state == CircuitState.HALF_OPEN and self._trial_in_progress
        ):
            self.stats['rejected_calls'] += 1
            raise CircuitOpenError(self.name, retry_after=self._retry_after())

        if self.state == CircuitState.HALF_OPEN:
            self._trial_in_progress = True

        self.stats['total_calls'] += 1
        try:
            result = await func(*args, **kwargs)
        except self.config.expected_exceptions as e:
            self._record_failure(e)
            raise
        except BaseException:
            # Unexpected errors neither trip nor heal the circuit
            self._trial_in_progress = False
            raise

        self._record_success()
        return result

    def reset(self):
        """Force the circuit back to CLOSED."""
        self.consecutive_failures = 0
        if self.state != CircuitState.CLOSED:
            self._transition_to_state(CircuitState.CLOSED, "Manual reset")

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            'name': self.name,
            'state': self.state.value,
            'consecutive_failures': self.consecutive_failures,
            'retry_after': self._retry_after() if self.state == CircuitState.OPEN else 0.0,
        }
