# 📄 File: recurring_billing/shared/core/exceptions.py
# 🧭 Purpose (Layman Explanation):
# This file defines the special error types the billing engine uses to say exactly what
# went wrong (unknown subscription, forbidden action, bad amount, gateway down).
# 🧪 Purpose (Technical Summary):
# Custom exception hierarchy providing specific error types with machine-readable error codes,
# structured details, and dictionary serialization for callers and operation results.
# 🔗 Dependencies:
# typing
# 🔄 Connected Modules / Calls From:
# Plan catalog, subscription store, payment processor, gateway clients, engine façade

from typing import Any, Dict, Optional


class BillingEngineException(Exception):
    """
    Base exception class for the billing engine.
    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        self.message = message
        self.details = details or {}
        self.error_code = error_code or self.__class__.__name__.upper()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


# =============================================================================
# VALIDATION & DATA EXCEPTIONS
# =============================================================================

class ValidationError(BillingEngineException):
    """
    Exception raised for data validation failures.
    Used for non-positive amounts, malformed requests, inconsistent dates.
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        value: Optional[Any] = None,
        constraint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if not details:
            details = {}

        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        if constraint:
            details["constraint"] = constraint

        super().__init__(
            message=message,
            details=details,
            error_code="VALIDATION_ERROR"
        )


class NotFoundError(BillingEngineException):
    """
    Exception raised when requested resource is not found.
    """

    def __init__(
        self,
        message: str = "Resource not found",
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if not details:
            details = {}

        if resource_type:
            details["resource_type"] = resource_type
        if resource_id:
            details["resource_id"] = resource_id

        super().__init__(
            message=message,
            details=details,
            error_code="NOT_FOUND"
        )


class SubscriptionNotFoundError(NotFoundError):
    """Unknown subscription id."""

    def __init__(self, subscription_id: str):
        super().__init__(
            message=f"Subscription not found: {subscription_id}",
            resource_type="subscription",
            resource_id=subscription_id
        )


class PlanNotFoundError(NotFoundError):
    """Unknown plan id."""

    def __init__(self, plan_id: str):
        super().__init__(
            message=f"Plan not found: {plan_id}",
            resource_type="plan",
            resource_id=plan_id
        )


class DuplicateResourceError(BillingEngineException):
    """
    Exception raised when attempting to create duplicate resources.
    """

    def __init__(
        self,
        message: str = "Resource already exists",
        resource_type: Optional[str] = None,
        field: Optional[str] = None,
        value: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if not details:
            details = {}

        if resource_type:
            details["resource_type"] = resource_type
        if field:
            details["field"] = field
        if value:
            details["value"] = value

        super().__init__(
            message=message,
            details=details,
            error_code="DUPLICATE_RESOURCE"
        )


class DuplicatePlanError(DuplicateResourceError):
    """A plan with the same id is already registered."""

    def __init__(self, plan_id: str):
        super().__init__(
            message=f"Plan already registered: {plan_id}",
            resource_type="plan",
            field="id",
            value=plan_id
        )


# =============================================================================
# BUSINESS LOGIC EXCEPTIONS
# =============================================================================

class InvalidStateTransitionError(BillingEngineException):
    """
    Exception raised when an operation is forbidden by the current status.
    """

    def __init__(
        self,
        message: str = "Invalid state transition",
        subscription_id: Optional[str] = None,
        current_status: Optional[str] = None,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if not details:
            details = {}

        if subscription_id:
            details["subscription_id"] = subscription_id
        if current_status:
            details["current_status"] = current_status
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            details=details,
            error_code="INVALID_STATE_TRANSITION"
        )


# =============================================================================
# EXTERNAL SERVICE EXCEPTIONS
# =============================================================================

class GatewayError(BillingEngineException):
    """
    Exception raised when the payment gateway cannot be reached or misbehaves.

    Never surfaces to engine callers: the payment processor records it as a
    failed billing attempt.
    """

    def __init__(
        self,
        message: str = "Payment gateway error",
        gateway: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        if not details:
            details = {}

        if gateway:
            details["gateway"] = gateway
        if status_code is not None:
            details["status_code"] = status_code

        self.status_code = status_code
        super().__init__(
            message=message,
            details=details,
            error_code="GATEWAY_ERROR"
        )


class CircuitOpenError(GatewayError):
    """Raised when the gateway circuit breaker is open and calls fail fast."""

    def __init__(self, circuit_name: str, retry_after: Optional[float] = None):
        details: Dict[str, Any] = {"circuit": circuit_name}
        if retry_after is not None:
            details["retry_after"] = round(retry_after, 2)
        super().__init__(
            message=f"Circuit breaker '{circuit_name}' is open",
            gateway=circuit_name,
            details=details
        )
        self.error_code = "CIRCUIT_OPEN"


def exception_to_dict(exception: Exception) -> Dict[str, Any]:
    """
    Convert any exception to dictionary format.

    Args:
        exception: Exception to convert

    Returns:
        Dict: Exception data as dictionary
    """
    if isinstance(exception, BillingEngineException):
        return exception.to_dict()

    return {
        "error": {
            "code": exception.__class__.__name__.upper(),
            "message": str(exception),
            "details": {},
        }
    }
