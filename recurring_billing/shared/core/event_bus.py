"""
Event bus system for the billing engine.
Enables decoupled communication between the engine and its observers through domain events.
"""

import inspect
import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Union
from uuid import uuid4

logger = logging.getLogger(__name__)

# Subscribing under this type receives every published event
ALL_EVENTS = "*"


@dataclass
class DomainEvent:
    """
    Base class for all domain events.
    Events represent something that happened in the domain.
    """
    event_type: str
    aggregate_id: str
    aggregate_type: str = "subscription"
    data: Dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data

    def get_correlation_id(self) -> Optional[str]:
        """Get correlation ID for event tracing."""
        return self.metadata.get('correlation_id')

    def set_correlation_id(self, correlation_id: str):
        """Set correlation ID for event tracing."""
        self.metadata['correlation_id'] = correlation_id


class EventHandler(ABC):
    """
    Abstract base class for event handlers.
    Each handler processes specific types of domain events.
    """

    @property
    @abstractmethod
    def event_type(self) -> str:
        """Event type this handler processes."""

    @abstractmethod
    async def handle(self, event: DomainEvent) -> None:
        """Handle the domain event."""

    def can_handle(self, event: DomainEvent) -> bool:
        """Check if this handler can process the event."""
        return self.event_type in (ALL_EVENTS, event.event_type)

    async def on_error(self, event: DomainEvent, error: Exception):
        """Handle errors during event processing."""
        logger.error(f"Error handling event {event.event_id}: {error}", exc_info=True)


EventCallback = Callable[[DomainEvent], Union[None, Awaitable[None]]]


class CallbackHandler(EventHandler):
    """Adapts a plain function (sync or async) to the handler interface."""

    def __init__(self, callback: EventCallback, event_type: str = ALL_EVENTS):
        self._callback = callback
        self._event_type = event_type

    @property
    def event_type(self) -> str:
        return self._event_type

    async def handle(self, event: DomainEvent) -> None:
        result = self._callback(event)
        if inspect.isawaitable(result):
            await result


@dataclass
class EventSubscription:
    """Event subscription configuration."""
    handler: EventHandler
    event_type: str
    priority: int = 1

    def to_dict(self) -> Dict[str, Any]:
        """Convert subscription to dictionary."""
        return {
            "handler_name": self.handler.__class__.__name__,
            "event_type": self.event_type,
            "priority": self.priority,
        }


class EventStore:
    """
    Bounded in-memory store of published events.
    """

    def __init__(self, max_events: int = 1000):
        self.events: Deque[DomainEvent] = deque(maxlen=max_events)

    def append(self, event: DomainEvent):
        """Store an event."""
        self.events.append(event)
        logger.debug(f"Event stored: {event.event_type} - {event.event_id}")

    def get_events(
        self,
        aggregate_id: Optional[str] = None,
        event_type: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> List[DomainEvent]:
        """Retrieve events in publication order with optional filtering."""
        filtered_events = list(self.events)

        if aggregate_id:
            filtered_events = [e for e in filtered_events if e.aggregate_id == aggregate_id]

        if event_type:
            filtered_events = [e for e in filtered_events if e.event_type == event_type]

        if since:
            filtered_events = [e for e in filtered_events if e.timestamp >= since]

        return filtered_events

    def clear(self):
        """Clear all stored events."""
        self.events.clear()


class EventBus:
    """
    Event bus for publishing and subscribing to domain events.

    Handlers run inline during publish, highest priority first. A failing
    handler is reported through its on_error hook and never reaches the
    publisher or the remaining handlers.
    """

    def __init__(self, event_store: Optional[EventStore] = None):
        self.subscriptions: Dict[str, List[EventSubscription]] = {}
        self.event_store = event_store or EventStore()
        self._stats = {
            "published": 0,
            "processed": 0,
            "failed": 0,
        }

    def subscribe(
        self,
        handler: Union[EventHandler, EventCallback],
        event_type: Optional[str] = None,
        priority: int = 1
    ) -> EventHandler:
        """
        Subscribe handler to event type.

        Args:
            handler: Event handler instance or plain callable
            event_type: Event type to subscribe to (uses handler.event_type if None,
                ALL_EVENTS for plain callables)
            priority: Handler priority (higher = executed first)

        Returns:
            The registered handler (needed to unsubscribe a plain callable)
        """
        if not isinstance(handler, EventHandler):
            handler = CallbackHandler(handler, event_type or ALL_EVENTS)

        if event_type is None:
            event_type = handler.event_type

        subscription = EventSubscription(handler=handler, event_type=event_type, priority=priority)
        self.subscriptions.setdefault(event_type, []).append(subscription)
        self.subscriptions[event_type].sort(key=lambda s: s.priority, reverse=True)

        logger.debug(f"Handler {handler.__class__.__name__} subscribed to {event_type}")
        return handler

    def unsubscribe(self, handler: EventHandler, event_type: Optional[str] = None):
        """
        Unsubscribe handler from event type.

        Args:
            handler: Event handler instance
            event_type: Event type to unsubscribe from
        """
        if event_type is None:
            event_type = handler.event_type

        if event_type in self.subscriptions:
            self.subscriptions[event_type] = [
                s for s in self.subscriptions[event_type]
                if s.handler is not handler
            ]

            if not self.subscriptions[event_type]:
                del self.subscriptions[event_type]

    async def publish(self, event: DomainEvent, correlation_id: Optional[str] = None):
        """
        Publish event to the bus.

        Args:
            event: Domain event to publish
            correlation_id: Optional correlation ID for tracing
        """
        if correlation_id:
            event.set_correlation_id(correlation_id)

        self.event_store.append(event)
        self._stats["published"] += 1

        targets = self.subscriptions.get(event.event_type, []) + self.subscriptions.get(ALL_EVENTS, [])
        for subscription in sorted(targets, key=lambda s: s.priority, reverse=True):
            await self._execute_handler(event, subscription)

    async def _execute_handler(self, event: DomainEvent, subscription: EventSubscription):
        handler = subscription.handler
        try:
            await handler.handle(event)
            self._stats["processed"] += 1
        except Exception as e:
            self._stats["failed"] += 1
            logger.warning(f"Handler {handler.__class__.__name__} failed for event {event.event_id}: {e}")
            await handler.on_error(event, e)

    def get_stats(self) -> Dict[str, Any]:
        """Get event bus statistics."""
        return {
            **self._stats,
            "subscriptions": {
                event_type: len(subs) for event_type, subs in self.subscriptions.items()
            },
            "stored_events": len(self.event_store.events),
        }
