"""
Core utilities package for the billing engine.
Provides the exception hierarchy and the domain event bus.
"""

from .exceptions import (
    BillingEngineException,
    CircuitOpenError,
    DuplicatePlanError,
    DuplicateResourceError,
    GatewayError,
    InvalidStateTransitionError,
    NotFoundError,
    PlanNotFoundError,
    SubscriptionNotFoundError,
    ValidationError,
    exception_to_dict,
)

from .event_bus import (
    ALL_EVENTS,
    CallbackHandler,
    DomainEvent,
    EventBus,
    EventHandler,
    EventStore,
)

__all__ = [
    # Exceptions
    "BillingEngineException",
    "CircuitOpenError",
    "DuplicatePlanError",
    "DuplicateResourceError",
    "GatewayError",
    "InvalidStateTransitionError",
    "NotFoundError",
    "PlanNotFoundError",
    "SubscriptionNotFoundError",
    "ValidationError",
    "exception_to_dict",

    # Events
    "ALL_EVENTS",
    "CallbackHandler",
    "DomainEvent",
    "EventBus",
    "EventHandler",
    "EventStore",
]
