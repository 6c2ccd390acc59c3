"""Typed coordinator errors.

Every failure the coordinator surfaces to a caller is a ``CoordinatorError``
subclass carrying enough context (execution, document, attempted transition)
to render a message without another round trip.
"""

from __future__ import annotations


class CoordinatorError(Exception):
    """Base class for errors raised by the execution coordinator."""

    kind = "coordinator_error"
    recoverable = False

    def __init__(
        self,
        message: str,
        *,
        execution_id: str | None = None,
        document_id: str | None = None,
        transition: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.execution_id = execution_id
        self.document_id = document_id
        self.transition = transition

    def to_dict(self) -> dict[str, object]:
        """Serialize the error for API responses and events."""
        return {
            "error": self.kind,
            "detail": self.message,
            "recoverable": self.recoverable,
            "execution_id": self.execution_id,
            "document_id": self.document_id,
            "transition": self.transition,
        }


class ExecutionInProgress(CoordinatorError):
    """The document already has a non-terminal execution or operation."""

    kind = "execution_in_progress"
    recoverable = True


class ExecutionImmutable(CoordinatorError):
    """The target execution is approved or approving and cannot be changed."""

    kind = "execution_immutable"


class InvalidTransition(CoordinatorError):
    kind = "invalid_transition"


class NoSectionsConfigured(CoordinatorError):
    kind = "no_sections_configured"


class TransportFailure(CoordinatorError):
    """The generation service could not be reached or answered with a 5xx."""

    kind = "transport_failure"
    recoverable = True


class UnknownOutcome(CoordinatorError):
    """A watch exhausted its retry budget before observing a terminal status."""

    kind = "unknown"
    recoverable = True


class ExecutionNotFound(CoordinatorError):
    kind = "execution_not_found"


class SectionNotFound(CoordinatorError):
    kind = "section_not_found"


class SectionReadOnly(CoordinatorError):
    """Reference sections cannot be edited, deleted or regenerated."""

    kind = "section_read_only"


class DuplicateExecution(CoordinatorError):
    kind = "duplicate_execution"


class ReorderConflict(CoordinatorError):
    """The section ordering changed after the caller's snapshot was taken."""

    kind = "reorder_conflict"
    recoverable = True

    def __init__(
        self,
        message: str,
        *,
        document_id: str | None = None,
        current_version: int | None = None,
    ) -> None:
        super().__init__(message, document_id=document_id, transition="reorder")
        self.current_version = current_version

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        payload["current_version"] = self.current_version
        return payload
