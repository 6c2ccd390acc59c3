"""Approval state machine — completed → approving → approved, and back to draft."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from docflow.coordinator.guard import Operation
from docflow.coordinator.poller import WatchKind
from docflow.errors import InvalidTransition
from docflow.models.execution import ExecutionStatus
from docflow.store.executions import TransitionSource

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from docflow.coordinator.guard import MutualExclusionGuard, OperationSlot
    from docflow.coordinator.poller import (
        CompletionEvent,
        CompletionPoller,
        CompletionWatch,
    )
    from docflow.models.execution import Execution, ExecutionSnapshot
    from docflow.services.generation import GenerationService
    from docflow.store.executions import ExecutionStore

logger = logging.getLogger(__name__)


@dataclass
class ApprovalHandle:
    """Returned by ``approve``; completes when the approval settles."""

    execution_id: str
    document_id: str
    watch: CompletionWatch

    async def wait(self) -> CompletionEvent | None:
        return await self.watch.wait()

    def events(self) -> AsyncIterator[CompletionEvent]:
        return self.watch.events()


class ApprovalStateMachine:
    """Drives approval and disapproval of a single execution.

    While an execution is ``approving`` the guard rejects every other operation
    on its document. Any observed status other than ``approved`` or
    ``approving`` is an approval failure and rolls the execution back to
    ``completed``; the completion event still reports the observed status.
    """

    def __init__(
        self,
        store: ExecutionStore,
        guard: MutualExclusionGuard,
        poller: CompletionPoller,
        service: GenerationService,
    ) -> None:
        self._store = store
        self._guard = guard
        self._poller = poller
        self._service = service

    async def approve(self, execution_id: str) -> ApprovalHandle:
        execution = self._store.get(execution_id)
        if not execution.is_mutable:
            raise InvalidTransition(
                f"Execution {execution_id} is {execution.status}; only completed "
                "or draft executions can be approved",
                execution_id=execution_id,
                document_id=execution.document_id,
                transition=f"{execution.status} -> {ExecutionStatus.APPROVING}",
            )

        slot = self._guard.acquire(
            execution.document_id, Operation.APPROVE, execution_id=execution_id
        )
        try:
            await self._service.approve_execution(execution_id)
            applied = await self._store.transition(
                execution_id, ExecutionStatus.APPROVING, expected_status=execution.status
            )
        except BaseException:
            self._guard.release(slot)
            raise
        if not applied:
            logger.warning(
                "Approval accepted but local status moved — execution=%s", execution_id
            )

        watch = self._poller.watch(
            execution_id, WatchKind.APPROVAL, on_snapshot=self.apply_snapshot
        )
        watch.add_done_callback(lambda event: self._finish(slot, event))
        logger.info(
            "Approval started — execution=%s document=%s",
            execution_id,
            execution.document_id,
        )
        return ApprovalHandle(
            execution_id=execution_id,
            document_id=execution.document_id,
            watch=watch,
        )

    async def apply_snapshot(
        self, snapshot: ExecutionSnapshot, expected: ExecutionStatus | None
    ) -> None:
        """Map an observed status onto the stored approval state."""
        if snapshot.status == ExecutionStatus.APPROVING:
            return
        if snapshot.status == ExecutionStatus.APPROVED:
            target = ExecutionStatus.APPROVED
        else:
            logger.warning(
                "Approval failed — execution=%s observed=%s; reverting to completed",
                snapshot.execution_id,
                snapshot.status,
            )
            target = ExecutionStatus.COMPLETED
        await self._store.transition(
            snapshot.execution_id,
            target,
            expected_status=expected,
            source=TransitionSource.POLL,
        )

    async def _finish(
        self, slot: OperationSlot, event: CompletionEvent | None
    ) -> None:
        self._guard.release(slot)
        if event is None:
            logger.info("Approval watch cancelled — execution=%s", slot.execution_id)
            return
        logger.info(
            "Approval settled — execution=%s status=%s",
            event.execution_id,
            event.final_status,
        )

    async def disapprove(self, execution_id: str) -> Execution:
        """Return an approved execution to the editable ``draft`` state."""
        execution = self._store.get(execution_id)
        if execution.status != ExecutionStatus.APPROVED:
            raise InvalidTransition(
                f"Execution {execution_id} is {execution.status}; only approved "
                "executions can be disapproved",
                execution_id=execution_id,
                document_id=execution.document_id,
                transition=f"{execution.status} -> {ExecutionStatus.DRAFT}",
            )
        slot = self._guard.acquire(
            execution.document_id, Operation.DISAPPROVE, execution_id=execution_id
        )
        try:
            await self._service.disapprove_execution(execution_id)
            await self._store.transition(
                execution_id, ExecutionStatus.DRAFT, expected_status=ExecutionStatus.APPROVED
            )
        finally:
            self._guard.release(slot)
        logger.info("Execution disapproved — execution=%s", execution_id)
        return self._store.get(execution_id)

    async def cancel(self, execution_id: str) -> None:
        await self._poller.cancel(execution_id, WatchKind.APPROVAL)
