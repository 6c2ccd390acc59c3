"""In-memory execution store — the single shared mutable resource per coordinator.

Every write goes through ``upsert`` which applies a compare-and-swap on the
caller's last known status and refuses transitions that would move an
execution backward along the lifecycle. Listeners receive a ``StoreEvent`` for
every applied change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from docflow.errors import (
    DuplicateExecution,
    ExecutionImmutable,
    ExecutionInProgress,
    ExecutionNotFound,
)
from docflow.models.execution import (
    IMMUTABLE_STATUSES,
    NON_TERMINAL_STATUSES,
    Execution,
    ExecutionStatus,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)

S = ExecutionStatus


class TransitionSource(StrEnum):
    """Who is attributed with a store write."""

    POLL = "poll"
    LISTING = "listing"
    MUTATION = "mutation"


_IN_PROGRESS = frozenset({S.PENDING, S.QUEUED, S.RUNNING, S.PROCESSING})
_GENERATION_END = frozenset({S.COMPLETED, S.FAILED, S.CANCELLED})

# Edges a status observation (poll or listing) may apply.
_POLL_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    S.PENDING: (_IN_PROGRESS - {S.PENDING}) | _GENERATION_END,
    S.QUEUED: frozenset({S.RUNNING, S.PROCESSING}) | _GENERATION_END,
    S.RUNNING: frozenset({S.PROCESSING}) | _GENERATION_END,
    S.PROCESSING: frozenset({S.RUNNING}) | _GENERATION_END,
    S.APPROVING: frozenset({S.APPROVED, S.COMPLETED}),
}

# Edges an authoritative listing may also apply: work started or a
# disapproval made elsewhere on a version that is settled locally.
_REOPEN = frozenset({S.APPROVING, S.PENDING, S.QUEUED, S.RUNNING, S.PROCESSING})
_LISTING_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    S.COMPLETED: _REOPEN,
    S.DRAFT: _REOPEN,
    S.APPROVED: frozenset({S.DRAFT}),
}

# Extra edges only a mutation response may apply: the listing edges, rolling
# back a rejected approval, and returning a draft after a regeneration ends.
_MUTATION_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    **_LISTING_TRANSITIONS,
    S.APPROVING: frozenset({S.COMPLETED}),
    **{status: frozenset({S.DRAFT}) for status in _IN_PROGRESS},
}


def is_allowed_transition(
    previous: ExecutionStatus,
    status: ExecutionStatus,
    source: TransitionSource,
) -> bool:
    """Return True when ``previous -> status`` moves forward for ``source``."""
    if previous == status:
        return True
    if status == S.UNKNOWN:
        return False
    if status in _POLL_TRANSITIONS.get(previous, frozenset()):
        return True
    if source == TransitionSource.MUTATION:
        return status in _MUTATION_TRANSITIONS.get(previous, frozenset())
    if source == TransitionSource.LISTING:
        return status in _LISTING_TRANSITIONS.get(previous, frozenset())
    return False


class StoreEventKind(StrEnum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    CONTENT_CHANGED = "content_changed"
    REMOVED = "removed"


@dataclass(frozen=True)
class StoreEvent:
    """A change applied to the execution store."""

    kind: StoreEventKind
    execution_id: str
    document_id: str
    previous_status: ExecutionStatus | None
    status: ExecutionStatus | None
    source: TransitionSource = TransitionSource.MUTATION


class ExecutionStore:
    """Authoritative list of executions, indexed by id and by document."""

    def __init__(self) -> None:
        self._executions: dict[str, Execution] = {}
        self._by_document: dict[str, set[str]] = {}
        self._in_flight: dict[str, str] = {}
        self._listeners: list[Callable[[StoreEvent], Awaitable[None]]] = []

    # -- subscriptions -----------------------------------------------------

    def subscribe(
        self, listener: Callable[[StoreEvent], Awaitable[None]]
    ) -> Callable[[], None]:
        """Register a change listener and return a function that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def _emit(self, event: StoreEvent) -> None:
        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception:
                logger.exception(
                    "Store listener failed — event=%s execution=%s",
                    event.kind,
                    event.execution_id,
                )

    # -- queries -----------------------------------------------------------

    def list(self, document_id: str) -> list[Execution]:
        """Return the document's executions, most recent first."""
        ids = self._by_document.get(document_id, set())
        executions = [self._executions[i].model_copy(deep=True) for i in ids]
        executions.sort(key=lambda e: e.created_at, reverse=True)
        return executions

    def find(self, execution_id: str) -> Execution | None:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    def get(self, execution_id: str) -> Execution:
        """Return an execution or raise ``ExecutionNotFound``."""
        execution = self.find(execution_id)
        if execution is None:
            raise ExecutionNotFound(
                f"Execution {execution_id} not found", execution_id=execution_id
            )
        return execution

    def status_of(self, execution_id: str) -> ExecutionStatus | None:
        execution = self._executions.get(execution_id)
        return execution.status if execution else None

    def in_flight(self, document_id: str) -> Execution | None:
        """Return the document's execution in a non-terminal status, if any."""
        execution_id = self._in_flight.get(document_id)
        return self.find(execution_id) if execution_id else None

    def active(self, document_id: str) -> Execution | None:
        """Return the version shown by default: latest approved, else latest."""
        executions = self.list(document_id)
        for execution in executions:
            if execution.status == S.APPROVED:
                return execution
        return executions[0] if executions else None

    # -- writes ------------------------------------------------------------

    async def insert(
        self,
        execution: Execution,
        *,
        source: TransitionSource = TransitionSource.MUTATION,
    ) -> Execution:
        """Add a new execution; its id must not exist yet."""
        if execution.id in self._executions:
            raise DuplicateExecution(
                f"Execution {execution.id} already exists",
                execution_id=execution.id,
                document_id=execution.document_id,
            )
        self._check_single_flight(execution)
        stored = execution.model_copy(deep=True)
        self._executions[stored.id] = stored
        self._by_document.setdefault(stored.document_id, set()).add(stored.id)
        self._index(stored)
        logger.debug(
            "Execution stored — id=%s document=%s status=%s",
            stored.id,
            stored.document_id,
            stored.status,
        )
        await self._emit(
            StoreEvent(
                kind=StoreEventKind.CREATED,
                execution_id=stored.id,
                document_id=stored.document_id,
                previous_status=None,
                status=stored.status,
                source=source,
            )
        )
        return stored.model_copy(deep=True)

    async def upsert(
        self,
        execution: Execution,
        *,
        expected_status: ExecutionStatus | None = None,
        source: TransitionSource = TransitionSource.MUTATION,
    ) -> bool:
        """Insert or replace an execution.

        ``expected_status`` is the writer's last known status; when the stored
        status differs the write is discarded. Backward transitions are
        discarded as well. Returns True when the write was applied.
        """
        current = self._executions.get(execution.id)
        if current is None:
            await self.insert(execution, source=source)
            return True

        if expected_status is not None and current.status != expected_status:
            logger.info(
                "Discarding stale write — execution=%s expected=%s actual=%s source=%s",
                execution.id,
                expected_status,
                current.status,
                source,
            )
            return False

        if not is_allowed_transition(current.status, execution.status, source):
            logger.info(
                "Rejected backward transition — execution=%s %s -> %s source=%s",
                execution.id,
                current.status,
                execution.status,
                source,
            )
            return False

        content_changed = execution.sections != current.sections
        if (
            content_changed
            and current.status in IMMUTABLE_STATUSES
            and execution.status in IMMUTABLE_STATUSES
        ):
            raise ExecutionImmutable(
                f"Execution {execution.id} is {current.status} and cannot be modified",
                execution_id=execution.id,
                document_id=current.document_id,
                transition="update-content",
            )

        status_changed = execution.status != current.status
        if status_changed:
            self._check_single_flight(execution)

        previous_status = current.status
        stored = execution.model_copy(
            deep=True,
            update={"document_id": current.document_id, "created_at": current.created_at},
        )
        stored.touch()
        self._executions[stored.id] = stored
        self._index(stored)

        if status_changed:
            kind = StoreEventKind.STATUS_CHANGED
        elif content_changed:
            kind = StoreEventKind.CONTENT_CHANGED
        else:
            return True

        await self._emit(
            StoreEvent(
                kind=kind,
                execution_id=stored.id,
                document_id=stored.document_id,
                previous_status=previous_status,
                status=stored.status,
                source=source,
            )
        )
        return True

    async def transition(
        self,
        execution_id: str,
        status: ExecutionStatus,
        *,
        expected_status: ExecutionStatus | None = None,
        source: TransitionSource = TransitionSource.MUTATION,
    ) -> bool:
        """Change only the status of an existing execution."""
        execution = self.get(execution_id)
        execution.status = status
        return await self.upsert(
            execution, expected_status=expected_status, source=source
        )

    async def remove(self, execution_id: str) -> Execution:
        """Delete an execution and return the removed record."""
        execution = self._executions.pop(execution_id, None)
        if execution is None:
            raise ExecutionNotFound(
                f"Execution {execution_id} not found", execution_id=execution_id
            )
        self._by_document.get(execution.document_id, set()).discard(execution_id)
        if self._in_flight.get(execution.document_id) == execution_id:
            del self._in_flight[execution.document_id]
        await self._emit(
            StoreEvent(
                kind=StoreEventKind.REMOVED,
                execution_id=execution_id,
                document_id=execution.document_id,
                previous_status=execution.status,
                status=None,
            )
        )
        return execution

    async def replace_document(
        self, document_id: str, executions: Iterable[Execution]
    ) -> None:
        """Reconcile the store with an authoritative listing for one document."""
        seen: set[str] = set()
        for execution in executions:
            seen.add(execution.id)
            try:
                await self.upsert(execution, source=TransitionSource.LISTING)
            except (ExecutionInProgress, ExecutionImmutable):
                logger.warning(
                    "Skipping inconsistent listing entry — execution=%s document=%s",
                    execution.id,
                    document_id,
                    exc_info=True,
                )
        for execution_id in set(self._by_document.get(document_id, set())) - seen:
            await self.remove(execution_id)

    # -- internals ---------------------------------------------------------

    def _check_single_flight(self, execution: Execution) -> None:
        if execution.status not in NON_TERMINAL_STATUSES:
            return
        holder = self._in_flight.get(execution.document_id)
        if holder is not None and holder != execution.id:
            raise ExecutionInProgress(
                f"Document {execution.document_id} already has execution "
                f"{holder} in progress",
                execution_id=execution.id,
                document_id=execution.document_id,
                transition=f"-> {execution.status}",
            )

    def _index(self, execution: Execution) -> None:
        holder = self._in_flight.get(execution.document_id)
        if execution.status in NON_TERMINAL_STATUSES:
            self._in_flight[execution.document_id] = execution.id
        elif holder == execution.id:
            del self._in_flight[execution.document_id]
