"""Mutual exclusion guard — at most one in-flight operation per document.

The guard is consulted synchronously before any mutation is dispatched. A
check followed by ``acquire`` with no ``await`` in between is atomic on the
event loop, so two concurrent requests can never both be allowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from docflow.errors import ExecutionInProgress
from docflow.models.execution import ExecutionMode

if TYPE_CHECKING:
    from docflow.coordinator.tracker import SectionRegenerationTracker
    from docflow.store.executions import ExecutionStore

logger = logging.getLogger(__name__)


class Operation(StrEnum):
    """Operations that occupy a document while they are in flight."""

    FULL = "full"
    FULL_SINGLE = "full-single"
    SINGLE = "single"
    FROM = "from"
    APPROVE = "approve"
    DISAPPROVE = "disapprove"
    CLONE = "clone"
    DELETE = "delete"
    EDIT_SECTION = "edit-section"

    @classmethod
    def from_mode(cls, mode: ExecutionMode) -> Operation:
        return cls(mode.value)

    @property
    def is_partial(self) -> bool:
        return self in (Operation.SINGLE, Operation.FROM)


@dataclass(frozen=True)
class GuardDecision:
    """Outcome of a guard check.

    ``attach_to`` is set when the request repeats an operation that is
    already in flight; the caller should join that operation instead of
    starting a new one.
    """

    allowed: bool
    reason: str | None = None
    attach_to: str | None = None

    @property
    def attached(self) -> bool:
        return self.attach_to is not None

    @classmethod
    def allow(cls) -> GuardDecision:
        return cls(allowed=True)

    @classmethod
    def reject(cls, reason: str) -> GuardDecision:
        return cls(allowed=False, reason=reason)

    @classmethod
    def attach(cls, execution_id: str) -> GuardDecision:
        return cls(allowed=False, reason="attached", attach_to=execution_id)


@dataclass
class OperationSlot:
    """A document reservation held from dispatch until the operation ends."""

    document_id: str
    operation: Operation
    execution_id: str | None = None
    section_id: str | None = None


class MutualExclusionGuard:
    """Decides whether an operation may start on a document."""

    def __init__(
        self, store: ExecutionStore, tracker: SectionRegenerationTracker
    ) -> None:
        self._store = store
        self._tracker = tracker
        self._slots: dict[str, OperationSlot] = {}

    def slot_for(self, document_id: str) -> OperationSlot | None:
        return self._slots.get(document_id)

    def check(
        self,
        document_id: str,
        operation: Operation,
        *,
        execution_id: str | None = None,
        section_id: str | None = None,
    ) -> GuardDecision:
        """Decide whether ``operation`` may start. Performs no I/O.

        A partial request attaches only to the same execution, mode and start
        section; any other request on a busy document is rejected.
        """
        slot = self._slots.get(document_id)
        if slot is not None:
            if (
                operation.is_partial
                and slot.operation == operation
                and slot.execution_id == execution_id
                and slot.section_id == section_id
            ):
                return GuardDecision.attach(slot.execution_id)
            return GuardDecision.reject(
                f"Document {document_id} has a {slot.operation} operation in progress"
            )

        in_flight = self._store.in_flight(document_id)
        if in_flight is None:
            return GuardDecision.allow()

        entry = self._tracker.get(in_flight.id)
        if (
            entry is not None
            and operation.is_partial
            and in_flight.id == execution_id
            and entry.mode.value == operation.value
            and entry.section_id == section_id
        ):
            return GuardDecision.attach(in_flight.id)
        return GuardDecision.reject(
            f"Document {document_id} has execution {in_flight.id} {in_flight.status}"
        )

    def acquire(
        self,
        document_id: str,
        operation: Operation,
        *,
        execution_id: str | None = None,
        section_id: str | None = None,
    ) -> OperationSlot:
        """Reserve the document or raise ``ExecutionInProgress``."""
        decision = self.check(
            document_id, operation, execution_id=execution_id, section_id=section_id
        )
        if not decision.allowed:
            logger.info(
                "Operation rejected — document=%s operation=%s reason=%s",
                document_id,
                operation,
                decision.reason,
            )
            raise ExecutionInProgress(
                decision.reason or f"Document {document_id} is busy",
                execution_id=execution_id,
                document_id=document_id,
                transition=str(operation),
            )
        slot = OperationSlot(
            document_id=document_id,
            operation=operation,
            execution_id=execution_id,
            section_id=section_id,
        )
        self._slots[document_id] = slot
        logger.debug(
            "Slot acquired — document=%s operation=%s execution=%s",
            document_id,
            operation,
            execution_id,
        )
        return slot

    def bind(self, slot: OperationSlot, execution_id: str) -> None:
        """Attach the execution id assigned by the service to a reserved slot."""
        slot.execution_id = execution_id

    def release(self, slot: OperationSlot) -> None:
        if self._slots.get(slot.document_id) is slot:
            del self._slots[slot.document_id]
            logger.debug(
                "Slot released — document=%s operation=%s execution=%s",
                slot.document_id,
                slot.operation,
                slot.execution_id,
            )
