"""Event contracts and publishing interfaces for cross-service communication."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from docflow.events.contracts import (
    EXECUTION_COMPLETED,
    VIEWS_INVALIDATED,
    EventEnvelope,
    ExecutionCompleted,
    ViewsInvalidated,
)
from docflow.events.servicebus import ServiceBusPublisher

logger = logging.getLogger(__name__)


@runtime_checkable
class EventPublisher(Protocol):
    """Protocol for publishing coordinator events to connected consumers."""

    async def publish(self, event_type: str, data: dict[str, Any] | str) -> None:
        """Broadcast an event to all connected consumers."""
        ...


class NullPublisher:
    """Publisher used when no event transport is configured."""

    async def publish(self, event_type: str, data: dict[str, Any] | str) -> None:  # noqa: ARG002
        logger.debug("Dropping event=%s (no publisher configured)", event_type)


__all__ = [
    "EXECUTION_COMPLETED",
    "VIEWS_INVALIDATED",
    "EventEnvelope",
    "EventPublisher",
    "ExecutionCompleted",
    "NullPublisher",
    "ServiceBusPublisher",
    "ViewsInvalidated",
]
