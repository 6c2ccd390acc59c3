"""Shared fixtures: an in-memory generation service and coordinator factories."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest

from docflow.config import PollingConfig
from docflow.coordinator import ExecutionCoordinator
from docflow.errors import CoordinatorError
from docflow.models.execution import (
    Execution,
    ExecutionMode,
    ExecutionSnapshot,
    ExecutionStatus,
    SectionOutput,
    SectionStatusSnapshot,
)
from docflow.models.section import Section, SectionType
from docflow.services.generation import CreateExecutionAck

DOCUMENT_ID = "doc-1"


def snapshot(
    execution_id: str,
    status: ExecutionStatus,
    outputs: dict[str, str] | None = None,
) -> ExecutionSnapshot:
    """Build a status snapshot with per-section outputs keyed by section id."""
    return ExecutionSnapshot(
        execution_id=execution_id,
        status=status,
        sections=[
            SectionStatusSnapshot(section_id=section_id, output=output)
            for section_id, output in (outputs or {}).items()
        ],
    )


class FakeGenerationService:
    """Scriptable in-memory stand-in for the generation service.

    ``script`` queues status responses per execution; the last queued response
    repeats. Queued exceptions are raised instead of returned.
    """

    def __init__(self) -> None:
        self.statuses: dict[str, list[ExecutionSnapshot | Exception]] = {}
        self.executions: dict[str, list[Execution]] = {}
        self.sections: dict[str, list[Section]] = {}
        self.errors: dict[str, Exception] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.status_calls = 0
        self.closed = False
        self._counter = 0

    def script(self, execution_id: str, *responses: ExecutionSnapshot | Exception) -> None:
        self.statuses[execution_id] = list(responses)

    def fail(self, method: str, error: CoordinatorError) -> None:
        self.errors[method] = error

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        error = self.errors.pop(method, None)
        if error is not None:
            raise error

    def called(self, method: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == method]

    async def create_execution(
        self,
        document_id: str,
        llm_id: str | None,
        instructions: str,
        mode: ExecutionMode,
        *,
        start_section_id: str | None = None,
        execution_id: str | None = None,
    ) -> CreateExecutionAck:
        self._record(
            "create_execution",
            document_id,
            llm_id,
            instructions,
            mode,
            start_section_id,
            execution_id,
        )
        if mode.is_partial and execution_id:
            return CreateExecutionAck(execution_id=execution_id)
        self._counter += 1
        return CreateExecutionAck(execution_id=f"exec-{self._counter}", job_id="job")

    async def get_execution_status(self, execution_id: str) -> ExecutionSnapshot:
        self.status_calls += 1
        queue = self.statuses.get(execution_id)
        if not queue:
            return snapshot(execution_id, ExecutionStatus.RUNNING)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def approve_execution(self, execution_id: str) -> None:
        self._record("approve_execution", execution_id)

    async def disapprove_execution(self, execution_id: str) -> None:
        self._record("disapprove_execution", execution_id)

    async def clone_execution(self, execution_id: str) -> str:
        self._record("clone_execution", execution_id)
        self._counter += 1
        return f"clone-{self._counter}"

    async def delete_execution(self, execution_id: str) -> None:
        self._record("delete_execution", execution_id)

    async def list_executions(self, document_id: str) -> list[Execution]:
        self._record("list_executions", document_id)
        return [e.model_copy(deep=True) for e in self.executions.get(document_id, [])]

    async def list_sections(self, document_id: str) -> list[Section]:
        self._record("list_sections", document_id)
        return [s.model_copy(deep=True) for s in self.sections.get(document_id, [])]

    async def update_section_order(self, document_id: str, ordering: list[str]) -> None:
        self._record("update_section_order", document_id, ordering)

    async def update_section_output(
        self, execution_id: str, section_id: str, content: str
    ) -> None:
        self._record("update_section_output", execution_id, section_id, content)

    async def delete_section_output(self, execution_id: str, section_id: str) -> None:
        self._record("delete_section_output", execution_id, section_id)

    async def add_section_output(
        self,
        execution_id: str,
        section_id: str,
        *,
        after_section_id: str | None = None,
    ) -> SectionOutput:
        self._record("add_section_output", execution_id, section_id, after_section_id)
        return SectionOutput(section_id=section_id)

    async def close(self) -> None:
        self.closed = True


def fast_polling(retry_budget: int = 3) -> PollingConfig:
    return PollingConfig(
        section_interval_ms=1,
        approval_interval_ms=1,
        execution_interval_ms=1,
        retry_budget=retry_budget,
    )


@pytest.fixture
def service() -> FakeGenerationService:
    return FakeGenerationService()


@pytest.fixture
async def coordinator(service: FakeGenerationService) -> AsyncIterator[ExecutionCoordinator]:
    """Coordinator over the fake service with 1 ms poll intervals."""
    instance = ExecutionCoordinator(service, polling=fast_polling())
    yield instance
    await instance.close()


@pytest.fixture
def make_sections() -> Callable[..., list[Section]]:
    def _make(
        count: int = 3,
        *,
        document_id: str = DOCUMENT_ID,
        types: dict[int, SectionType] | None = None,
    ) -> list[Section]:
        return [
            Section(
                id=f"S{index}",
                document_id=document_id,
                name=f"Section {index}",
                type=(types or {}).get(index, SectionType.AI),
                order=index,
            )
            for index in range(1, count + 1)
        ]

    return _make


@pytest.fixture
def make_execution() -> Callable[..., Execution]:
    def _make(
        execution_id: str = "exec-1",
        *,
        document_id: str = DOCUMENT_ID,
        status: ExecutionStatus = ExecutionStatus.COMPLETED,
        contents: dict[str, str] | None = None,
    ) -> Execution:
        if contents is None:
            contents = {"S1": "one", "S2": "two", "S3": "three"}
        return Execution(
            id=execution_id,
            document_id=document_id,
            status=status,
            sections=[
                SectionOutput(section_id=section_id, content=content)
                for section_id, content in contents.items()
            ],
        )

    return _make
