"""Execution coordinator — the single entry point for execution lifecycle operations.

Owns the execution and section stores and wires the guard, tracker, poller,
approval state machine, notification ledger and cache layer together. Every
mutation runs the same sequence: guard check, dispatch to the generation
service, compare-and-swap into the store, then a completion watch.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from functools import partial
from typing import TYPE_CHECKING

from docflow.config import PollingConfig
from docflow.coordinator.approval import ApprovalStateMachine
from docflow.coordinator.cache import ALL_VIEWS, CacheConsistencyLayer, View
from docflow.coordinator.guard import MutualExclusionGuard, Operation
from docflow.coordinator.ledger import NotificationLedger
from docflow.coordinator.poller import CompletionPoller, WatchKind
from docflow.coordinator.tracker import RegenerationEntry, SectionRegenerationTracker
from docflow.errors import (
    CoordinatorError,
    DuplicateExecution,
    ExecutionImmutable,
    ExecutionInProgress,
    InvalidTransition,
    NoSectionsConfigured,
    ReorderConflict,
    SectionNotFound,
    SectionReadOnly,
)
from docflow.events import EXECUTION_COMPLETED, ExecutionCompleted, NullPublisher
from docflow.models.execution import (
    Execution,
    ExecutionMode,
    ExecutionStatus,
    SectionOutput,
)
from docflow.store.executions import ExecutionStore, TransitionSource
from docflow.store.sections import SectionStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from docflow.coordinator.approval import ApprovalHandle
    from docflow.coordinator.guard import OperationSlot
    from docflow.coordinator.poller import CompletionEvent, CompletionWatch
    from docflow.events import EventPublisher
    from docflow.models.execution import ExecutionSnapshot
    from docflow.models.section import Section
    from docflow.services.generation import GenerationService
    from docflow.store.sections import SectionSnapshot

logger = logging.getLogger(__name__)

_PARTIAL_RUN_END = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
)

_ACTIVE_ELSEWHERE = frozenset({ExecutionStatus.PENDING, ExecutionStatus.RUNNING})


@dataclass(frozen=True)
class ExecutionRequest:
    """Parameters of a generation request."""

    llm_id: str | None = None
    instructions: str = ""
    section_id: str | None = None
    execution_id: str | None = None


@dataclass(frozen=True)
class ExecutionHandle:
    """A caller's view of a dispatched (or joined) generation."""

    execution_id: str
    document_id: str
    mode: ExecutionMode
    watch: CompletionWatch
    section_index: int | None = None
    attached: bool = False

    async def wait(self) -> CompletionEvent | None:
        return await self.watch.wait()

    def events(self) -> AsyncIterator[CompletionEvent]:
        return self.watch.events()


@dataclass(frozen=True)
class SelectedExecution:
    execution: Execution
    is_latest: bool


class ExecutionCoordinator:
    """Coordinates long-running executions against the generation service."""

    def __init__(
        self,
        service: GenerationService,
        *,
        polling: PollingConfig | None = None,
        publisher: EventPublisher | None = None,
    ) -> None:
        self._service = service
        self._publisher = publisher or NullPublisher()
        self.store = ExecutionStore()
        self.sections = SectionStore()
        self.tracker = SectionRegenerationTracker()
        self.guard = MutualExclusionGuard(self.store, self.tracker)
        self.poller = CompletionPoller(service, self.store, polling or PollingConfig())
        self.approvals = ApprovalStateMachine(
            self.store, self.guard, self.poller, service
        )
        self.ledger = NotificationLedger()
        self.cache = CacheConsistencyLayer(self.store, publisher=self._publisher)
        self._handles: dict[tuple[str, ExecutionMode], ExecutionHandle] = {}
        self._dispatching: dict[tuple[str, ExecutionMode], asyncio.Future[ExecutionHandle]] = {}

    async def close(self) -> None:
        await self.poller.close()
        self.cache.close()

    # -- loading -----------------------------------------------------------

    async def load_document(self, document_id: str) -> list[Execution]:
        """Reconcile local state with the service and resume any in-flight watch."""
        executions = await self._service.list_executions(document_id)
        sections = await self._service.list_sections(document_id)
        self.sections.replace(document_id, sections)
        await self.store.replace_document(document_id, executions)
        await self.cache.invalidate(document_id, ALL_VIEWS)

        in_flight = self.store.in_flight(document_id)
        if in_flight is not None and self.poller.get(in_flight.id) is None:
            logger.info(
                "Resuming watch for in-flight execution — document=%s execution=%s status=%s",
                document_id,
                in_flight.id,
                in_flight.status,
            )
            self.watch_completion(in_flight.id)
        return self.store.list(document_id)

    def list_executions(self, document_id: str) -> list[Execution]:
        return self.store.list(document_id)

    def list_sections(self, document_id: str) -> list[Section]:
        return self.sections.sections(document_id)

    # -- generation --------------------------------------------------------

    async def request_execution(
        self,
        document_id: str,
        mode: ExecutionMode,
        request: ExecutionRequest,
    ) -> ExecutionHandle:
        """Dispatch a generation request in any mode."""
        if mode.creates_version:
            return await self.create_full(
                document_id, request.llm_id, request.instructions, mode=mode
            )
        if not request.execution_id or not request.section_id:
            raise InvalidTransition(
                f"Mode {mode} requires an execution and a start section",
                document_id=document_id,
                transition=str(mode),
            )
        execution = self.store.get(request.execution_id)
        if execution.document_id != document_id:
            raise InvalidTransition(
                f"Execution {execution.id} does not belong to document {document_id}",
                execution_id=execution.id,
                document_id=document_id,
            )
        return await self.regenerate(
            request.execution_id,
            request.section_id,
            request.llm_id,
            request.instructions,
            mode=mode,
        )

    async def create_full(
        self,
        document_id: str,
        llm_id: str | None,
        instructions: str,
        *,
        mode: ExecutionMode = ExecutionMode.FULL,
    ) -> ExecutionHandle:
        """Create a new execution of the whole document (or only its first section)."""
        if not mode.creates_version:
            msg = f"create_full does not accept partial mode {mode}"
            raise ValueError(msg)
        if not self.sections.sections(document_id):
            raise NoSectionsConfigured(
                f"Document {document_id} has no sections configured",
                document_id=document_id,
                transition=str(mode),
            )

        slot = self.guard.acquire(document_id, Operation.from_mode(mode))
        try:
            ack = await self._service.create_execution(
                document_id, llm_id, instructions, mode
            )
            if self.store.find(ack.execution_id) is not None:
                raise DuplicateExecution(
                    f"Generation service reused execution id {ack.execution_id}",
                    execution_id=ack.execution_id,
                    document_id=document_id,
                )
            execution = Execution(
                id=ack.execution_id,
                document_id=document_id,
                status=ExecutionStatus.PENDING,
                llm_id=llm_id,
                instructions=instructions,
            )
            await self.store.insert(execution)
            await self.store.transition(
                execution.id, ExecutionStatus.RUNNING, expected_status=ExecutionStatus.PENDING
            )
        except BaseException:
            self.guard.release(slot)
            raise

        self.guard.bind(slot, execution.id)
        watch = self.poller.watch(
            execution.id,
            WatchKind.EXECUTION,
            mode=mode,
            on_snapshot=partial(self._apply_generation_snapshot, mode=mode, start_index=0),
        )
        handle = ExecutionHandle(
            execution_id=execution.id,
            document_id=document_id,
            mode=mode,
            watch=watch,
        )
        self._track_handle(handle, slot)
        logger.info(
            "Execution created — document=%s execution=%s mode=%s",
            document_id,
            execution.id,
            mode,
        )
        return handle

    async def regenerate(
        self,
        execution_id: str,
        section_id: str,
        llm_id: str | None,
        instructions: str,
        *,
        mode: ExecutionMode,
    ) -> ExecutionHandle:
        """Regenerate one section (``single``) or a section and all after it (``from``)."""
        if not mode.is_partial:
            msg = f"regenerate requires a partial mode, got {mode}"
            raise ValueError(msg)
        execution = self.store.get(execution_id)
        document_id = execution.document_id
        if execution.is_immutable:
            raise ExecutionImmutable(
                f"Execution {execution_id} is {execution.status} and cannot be regenerated",
                execution_id=execution_id,
                document_id=document_id,
                transition=f"{execution.status} -> {mode}",
            )

        operation = Operation.from_mode(mode)
        decision = self.guard.check(
            document_id, operation, execution_id=execution_id, section_id=section_id
        )
        if decision.attached:
            return await self._attach(execution_id, mode)
        if not decision.allowed:
            raise ExecutionInProgress(
                decision.reason or f"Document {document_id} is busy",
                execution_id=execution_id,
                document_id=document_id,
                transition=str(mode),
            )
        if not execution.is_mutable:
            raise InvalidTransition(
                f"Execution {execution_id} is {execution.status}; regeneration "
                "requires a completed or draft execution",
                execution_id=execution_id,
                document_id=document_id,
                transition=f"{execution.status} -> {mode}",
            )
        index, total = self._regeneration_target(execution, section_id)
        slot = self.guard.acquire(
            document_id, operation, execution_id=execution_id, section_id=section_id
        )

        key = (execution_id, mode)
        pending: asyncio.Future[ExecutionHandle] = asyncio.get_running_loop().create_future()
        self._dispatching[key] = pending
        try:
            ack = await self._service.create_execution(
                document_id,
                llm_id,
                instructions,
                mode,
                start_section_id=section_id,
                execution_id=execution_id,
            )
            if ack.execution_id != execution_id:
                logger.warning(
                    "Service answered a partial regeneration with another id — "
                    "target=%s returned=%s",
                    execution_id,
                    ack.execution_id,
                )
            applied = await self.store.transition(
                execution_id, ExecutionStatus.RUNNING, expected_status=execution.status
            )
            if not applied:
                logger.warning(
                    "Regeneration accepted but local status moved — execution=%s",
                    execution_id,
                )
            self.tracker.register(
                RegenerationEntry(
                    execution_id=execution_id,
                    document_id=document_id,
                    mode=mode,
                    section_id=section_id,
                    section_index=index,
                    total_sections=total,
                )
            )
            watch = self.poller.watch(
                execution_id,
                WatchKind.SECTION,
                mode=mode,
                on_snapshot=partial(
                    self._apply_generation_snapshot,
                    mode=mode,
                    start_index=index,
                    restore_status=execution.status,
                ),
            )
            handle = ExecutionHandle(
                execution_id=execution_id,
                document_id=document_id,
                mode=mode,
                watch=watch,
                section_index=index,
            )
            self._track_handle(handle, slot)
            pending.set_result(handle)
        except BaseException as exc:
            self.guard.release(slot)
            if isinstance(exc, Exception):
                pending.set_exception(exc)
                pending.exception()
            else:
                pending.cancel()
            raise
        finally:
            self._dispatching.pop(key, None)

        logger.info(
            "Regeneration started — execution=%s mode=%s section=%s index=%d",
            execution_id,
            mode,
            section_id,
            index,
        )
        return handle

    def _regeneration_target(self, execution: Execution, section_id: str) -> tuple[int, int]:
        """Validate the start section and return its index and the section count."""
        catalog = self.sections.snapshot(execution.document_id)
        if catalog.sections:
            section = self.sections.get(execution.document_id, section_id)
            if section.is_read_only:
                raise SectionReadOnly(
                    f"Section {section_id} is a reference section",
                    execution_id=execution.id,
                    document_id=execution.document_id,
                )
            if not section.is_regenerable:
                raise InvalidTransition(
                    f"Section {section_id} is {section.type}; only ai sections "
                    "can be regenerated",
                    execution_id=execution.id,
                    document_id=execution.document_id,
                )
        index = execution.section_index(section_id)
        if index is None:
            index = catalog.index_of(section_id)
        if index is None:
            raise SectionNotFound(
                f"Section {section_id} not found in execution {execution.id}",
                execution_id=execution.id,
                document_id=execution.document_id,
            )
        return index, max(len(execution.sections), len(catalog.sections))

    async def _attach(self, execution_id: str, mode: ExecutionMode) -> ExecutionHandle:
        """Join an identical request that is already dispatched or running."""
        key = (execution_id, mode)
        handle = self._handles.get(key)
        if handle is None and key in self._dispatching:
            handle = await asyncio.shield(self._dispatching[key])
        if handle is None or handle.watch.done:
            raise ExecutionInProgress(
                f"Execution {execution_id} is busy and cannot be joined",
                execution_id=execution_id,
                transition=str(mode),
            )
        logger.info("Attached to in-flight regeneration — execution=%s mode=%s", execution_id, mode)
        return replace(handle, attached=True)

    def _track_handle(self, handle: ExecutionHandle, slot: OperationSlot) -> None:
        self._handles[(handle.execution_id, handle.mode)] = handle
        handle.watch.add_done_callback(
            partial(self._on_generation_complete, handle=handle, slot=slot)
        )

    async def _apply_generation_snapshot(
        self,
        snapshot: ExecutionSnapshot,
        expected: ExecutionStatus | None,
        *,
        mode: ExecutionMode | None,
        start_index: int,
        restore_status: ExecutionStatus = ExecutionStatus.COMPLETED,
    ) -> None:
        """Write a generation snapshot to the store.

        Full modes replace outputs progressively as they appear. Partial modes
        keep the existing content until the regeneration completes, then replace
        only the affected sections. A partial run that ends in any way returns
        the execution to ``restore_status``, the mutable status it had before
        the run; its failure is recorded by the tracker only.
        """
        current = self.store.find(snapshot.execution_id)
        if current is None:
            return
        updated = current.model_copy(deep=True)
        updated.status = snapshot.status
        source = TransitionSource.POLL
        if mode is None or mode.creates_version:
            self._merge_outputs(updated, snapshot, affected=None)
        elif snapshot.status in _PARTIAL_RUN_END:
            if snapshot.status == ExecutionStatus.COMPLETED:
                if mode == ExecutionMode.SINGLE:
                    affected = {start_index}
                else:
                    affected = set(range(start_index, max(len(updated.sections), len(snapshot.sections))))
                self._merge_outputs(updated, snapshot, affected=affected)
            updated.status = restore_status
            source = TransitionSource.MUTATION
        await self.store.upsert(updated, expected_status=expected, source=source)

    @staticmethod
    def _merge_outputs(
        execution: Execution,
        snapshot: ExecutionSnapshot,
        *,
        affected: set[int] | None,
    ) -> None:
        for position, section in enumerate(snapshot.sections):
            if section.output is None:
                continue
            index = execution.section_index(section.section_id) if section.section_id else None
            target = index if index is not None else position
            if affected is not None and target not in affected:
                continue
            if index is None:
                execution.sections.append(
                    SectionOutput(section_id=section.section_id, content=section.output)
                )
            else:
                execution.sections[index].content = section.output

    async def _on_generation_complete(
        self,
        event: CompletionEvent | None,
        *,
        handle: ExecutionHandle,
        slot: OperationSlot,
    ) -> None:
        self.guard.release(slot)
        key = (handle.execution_id, handle.mode)
        if self._handles.get(key) is handle:
            del self._handles[key]
        if event is None:
            self.tracker.discard(handle.execution_id)
            return
        if handle.mode.is_partial:
            self.tracker.complete(handle.execution_id, event.final_status)
            self.ledger.auto_dismiss(handle.document_id, handle.execution_id)
        await self._publish_completed(event, document_id=handle.document_id)

    async def _publish_completed(
        self, event: CompletionEvent | None, *, document_id: str
    ) -> None:
        if event is None:
            return
        payload = ExecutionCompleted(
            execution_id=event.execution_id,
            document_id=document_id,
            mode=event.mode,
            final_status=event.final_status,
            error=event.error.message if event.error else None,
        )
        await self._publisher.publish(EXECUTION_COMPLETED, payload.model_dump(mode="json"))

    # -- watching ----------------------------------------------------------

    def watch_completion(
        self, execution_id: str, mode: ExecutionMode | None = None
    ) -> CompletionWatch:
        """Return the live watch for an execution, starting one if needed."""
        live = self.poller.get(execution_id)
        if live is not None:
            return live
        execution = self.store.get(execution_id)
        if execution.status == ExecutionStatus.APPROVING:
            return self.poller.watch(
                execution_id, WatchKind.APPROVAL, on_snapshot=self.approvals.apply_snapshot
            )
        partial_run = mode is not None and mode.is_partial
        # Without the original start section, a resumed partial run replaces
        # every output the service reports once it completes.
        watch = self.poller.watch(
            execution_id,
            WatchKind.SECTION if partial_run else WatchKind.EXECUTION,
            mode=mode,
            on_snapshot=partial(
                self._apply_generation_snapshot,
                mode=ExecutionMode.FROM if partial_run else mode,
                start_index=0,
            ),
        )
        watch.add_done_callback(
            partial(self._publish_completed, document_id=execution.document_id)
        )
        return watch

    async def cancel_watch(self, execution_id: str) -> None:
        """Stop observing an execution; late responses are discarded."""
        await self.poller.cancel(execution_id)

    async def sync(self, execution_id: str) -> Execution:
        """Fetch the authoritative status now, e.g. after an unknown outcome."""
        if self.poller.get(execution_id) is not None:
            await self.poller.refresh(execution_id)
            return self.store.get(execution_id)
        expected = self.store.get(execution_id).status
        snapshot = await self._service.get_execution_status(execution_id)
        if expected == ExecutionStatus.APPROVING:
            await self.approvals.apply_snapshot(snapshot, expected)
        else:
            await self._apply_generation_snapshot(snapshot, expected, mode=None, start_index=0)
        return self.store.get(execution_id)

    # -- approval ----------------------------------------------------------

    async def approve(self, execution_id: str) -> ApprovalHandle:
        return await self.approvals.approve(execution_id)

    async def disapprove(self, execution_id: str) -> Execution:
        return await self.approvals.disapprove(execution_id)

    # -- version management ------------------------------------------------

    async def clone(self, execution_id: str) -> Execution:
        """Copy an execution into a new, mutable ``completed`` version."""
        source = self.store.get(execution_id)
        slot = self.guard.acquire(
            source.document_id, Operation.CLONE, execution_id=execution_id
        )
        try:
            clone_id = await self._service.clone_execution(execution_id)
            clone = Execution(
                id=clone_id,
                document_id=source.document_id,
                status=ExecutionStatus.COMPLETED,
                name=f"{source.name} (copy)" if source.name else "",
                llm_id=source.llm_id,
                instructions=source.instructions,
                sections=[
                    SectionOutput(section_id=output.section_id, content=output.content)
                    for output in source.sections
                ],
            )
            stored = await self.store.insert(clone)
        finally:
            self.guard.release(slot)
        logger.info("Execution cloned — source=%s clone=%s", execution_id, clone_id)
        return stored

    async def delete(self, execution_id: str) -> Execution | None:
        """Delete an execution and return the version that becomes active."""
        execution = self.store.get(execution_id)
        if execution.is_immutable:
            raise ExecutionImmutable(
                f"Execution {execution_id} is {execution.status} and cannot be deleted",
                execution_id=execution_id,
                document_id=execution.document_id,
                transition="delete",
            )
        document_id = execution.document_id
        slot = self.guard.acquire(document_id, Operation.DELETE, execution_id=execution_id)
        try:
            await self._service.delete_execution(execution_id)
            await self.poller.cancel(execution_id)
            await self.store.remove(execution_id)
        finally:
            self.guard.release(slot)
        self.tracker.clear_failure(execution_id)

        remaining = self.store.list(document_id)
        successor = remaining[0] if remaining else None
        if self.ledger.selected(document_id) == execution_id:
            self.ledger.select(document_id, successor.id if successor else None)
        logger.info(
            "Execution deleted — execution=%s successor=%s",
            execution_id,
            successor.id if successor else None,
        )
        return successor

    # -- section output editing --------------------------------------------

    async def update_section_output(
        self, execution_id: str, section_id: str, content: str
    ) -> Execution:
        execution, slot = self._begin_section_edit(execution_id, section_id)
        try:
            index = execution.section_index(section_id)
            if index is None:
                raise SectionNotFound(
                    f"Execution {execution_id} has no output for section {section_id}",
                    execution_id=execution_id,
                    document_id=execution.document_id,
                )
            await self._service.update_section_output(execution_id, section_id, content)
            execution.sections[index].content = content
            await self.store.upsert(execution, expected_status=execution.status)
        finally:
            self.guard.release(slot)
        return self.store.get(execution_id)

    async def delete_section_output(self, execution_id: str, section_id: str) -> Execution:
        execution, slot = self._begin_section_edit(execution_id, section_id)
        try:
            index = execution.section_index(section_id)
            if index is None:
                raise SectionNotFound(
                    f"Execution {execution_id} has no output for section {section_id}",
                    execution_id=execution_id,
                    document_id=execution.document_id,
                )
            await self._service.delete_section_output(execution_id, section_id)
            del execution.sections[index]
            await self.store.upsert(execution, expected_status=execution.status)
        finally:
            self.guard.release(slot)
        return self.store.get(execution_id)

    async def add_section_output(
        self,
        execution_id: str,
        section_id: str,
        *,
        after_section_id: str | None = None,
    ) -> Execution:
        """Insert an empty output for a section after another one, or first."""
        execution, slot = self._begin_section_edit(execution_id, section_id)
        try:
            position = 0
            if after_section_id is not None:
                after = execution.section_index(after_section_id)
                if after is None:
                    raise SectionNotFound(
                        f"Execution {execution_id} has no output for section "
                        f"{after_section_id}",
                        execution_id=execution_id,
                        document_id=execution.document_id,
                    )
                position = after + 1
            output = await self._service.add_section_output(
                execution_id, section_id, after_section_id=after_section_id
            )
            execution.sections.insert(position, output)
            await self.store.upsert(execution, expected_status=execution.status)
        finally:
            self.guard.release(slot)
        return self.store.get(execution_id)

    def _begin_section_edit(
        self, execution_id: str, section_id: str
    ) -> tuple[Execution, OperationSlot]:
        execution = self.store.get(execution_id)
        if execution.is_immutable:
            raise ExecutionImmutable(
                f"Execution {execution_id} is {execution.status} and cannot be edited",
                execution_id=execution_id,
                document_id=execution.document_id,
                transition="edit-section",
            )
        if self.sections.snapshot(execution.document_id).index_of(section_id) is not None:
            section = self.sections.get(execution.document_id, section_id)
            if section.is_read_only:
                raise SectionReadOnly(
                    f"Section {section_id} is a reference section",
                    execution_id=execution_id,
                    document_id=execution.document_id,
                )
        slot = self.guard.acquire(
            execution.document_id, Operation.EDIT_SECTION, execution_id=execution_id
        )
        if not execution.is_mutable:
            self.guard.release(slot)
            raise InvalidTransition(
                f"Execution {execution_id} is {execution.status}; only completed "
                "or draft executions can be edited",
                execution_id=execution_id,
                document_id=execution.document_id,
                transition="edit-section",
            )
        return execution, slot

    # -- sections ----------------------------------------------------------

    async def reorder_sections(
        self,
        document_id: str,
        ordering: list[str],
        *,
        expected_version: int,
    ) -> SectionSnapshot:
        """Apply a full section ordering; a stale snapshot raises ``ReorderConflict``."""
        before = self.sections.snapshot(document_id)
        snapshot = self.sections.reorder(
            document_id, ordering, expected_version=expected_version
        )
        try:
            await self._service.update_section_order(document_id, ordering)
        except ReorderConflict:
            fresh = await self._service.list_sections(document_id)
            latest = self.sections.replace(document_id, fresh)
            await self.cache.invalidate(document_id, {View.SECTIONS, View.CONTENT})
            raise ReorderConflict(
                f"Sections of document {document_id} changed on the server",
                document_id=document_id,
                current_version=latest.version,
            ) from None
        except CoordinatorError:
            self.sections.replace(document_id, before.sections)
            await self.cache.invalidate(document_id, {View.SECTIONS, View.CONTENT})
            raise
        await self.cache.invalidate(document_id, {View.SECTIONS, View.CONTENT})
        logger.info(
            "Sections reordered — document=%s version=%d", document_id, snapshot.version
        )
        return snapshot

    # -- selection and notifications ---------------------------------------

    def select(self, document_id: str, execution_id: str | None = None) -> None:
        if execution_id is not None:
            self.store.get(execution_id)
        self.ledger.select(document_id, execution_id)

    def dismiss(self, document_id: str, execution_id: str) -> None:
        self.ledger.dismiss(document_id, execution_id)

    def should_notify(self, document_id: str, execution_id: str) -> bool:
        """Return whether an in-progress notice for the execution should be shown."""
        if self.ledger.is_dismissed(document_id, execution_id):
            return False
        if self.tracker.get(execution_id) is not None:
            return False
        execution = self.store.find(execution_id)
        return execution is not None and execution.is_in_flight

    # -- document queries --------------------------------------------------

    def has_execution_in_process(self, document_id: str) -> bool:
        return self.store.in_flight(document_id) is not None

    def has_pending_execution(self, document_id: str) -> bool:
        return any(
            execution.status == ExecutionStatus.PENDING
            for execution in self.store.list(document_id)
        )

    def has_new_pending_execution(self, document_id: str) -> bool:
        """True while a pending execution has no generated content yet."""
        return any(
            execution.status == ExecutionStatus.PENDING
            and not any(output.has_content for output in execution.sections)
            for execution in self.store.list(document_id)
        )

    def active_execution(self, document_id: str) -> Execution | None:
        return self.store.active(document_id)

    def selected_execution(self, document_id: str) -> SelectedExecution | None:
        """Return the selected version, defaulting to the active one."""
        executions = self.store.list(document_id)
        if not executions:
            return None
        selected_id = self.ledger.selected(document_id)
        execution = next((e for e in executions if e.id == selected_id), None)
        if execution is None:
            execution = self.store.active(document_id)
        return SelectedExecution(
            execution=execution,
            is_latest=execution.id == executions[0].id,
        )

    def other_version_active_executions(self, document_id: str) -> list[Execution]:
        """In-progress executions other than the selected one that still warrant a notice."""
        selected = self.selected_execution(document_id)
        selected_id = selected.execution.id if selected else None
        return [
            execution
            for execution in self.store.list(document_id)
            if execution.status in _ACTIVE_ELSEWHERE
            and execution.id != selected_id
            and not self.ledger.is_dismissed(document_id, execution.id)
            and self.tracker.get(execution.id) is None
        ]

    def is_section_regenerating(self, execution_id: str, section_index: int) -> bool:
        return self.tracker.is_regenerating(execution_id, section_index)

    def failed_sections(self, execution_id: str) -> list[int]:
        return self.tracker.failed_sections(execution_id)
