"""Typed contracts for coordinator events published to other services."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field

from docflow.models.execution import ExecutionMode, ExecutionStatus

EXECUTION_COMPLETED = "execution-completed"
VIEWS_INVALIDATED = "views-invalidated"


class EventEnvelope(BaseModel):
    """Canonical event envelope used on Service Bus."""

    event: str
    data: dict[str, Any] | str

    @classmethod
    def from_message_body(cls, body: str) -> EventEnvelope:
        """Parse an event envelope from a JSON message body.

        Accepts payloads where ``data`` was sent as stringified JSON.
        """
        payload = json.loads(body)
        envelope = cls.model_validate(payload)
        if isinstance(envelope.data, str):
            try:
                decoded = json.loads(envelope.data)
            except json.JSONDecodeError:
                return envelope
            if isinstance(decoded, dict):
                envelope.data = decoded
        return envelope


class ExecutionCompleted(BaseModel):
    """Payload of an ``execution-completed`` event."""

    execution_id: str
    document_id: str
    mode: ExecutionMode | None = None
    final_status: ExecutionStatus
    error: str | None = None


class ViewsInvalidated(BaseModel):
    """Payload of a ``views-invalidated`` event."""

    document_id: str
    views: list[str] = Field(default_factory=list)
    execution_id: str | None = None
