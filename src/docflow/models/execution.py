"""Execution document model — immutable-once-terminal versions of a document."""

from __future__ import annotations

from enum import StrEnum
from uuid import uuid4

from pydantic import BaseModel, Field

from docflow.models.base import DocumentBase


class ExecutionStatus(StrEnum):
    PENDING = "pending"
    QUEUED = "queued"
    RUNNING = "running"
    PROCESSING = "processing"
    COMPLETED = "completed"
    APPROVING = "approving"
    APPROVED = "approved"
    # Post-disapproval draft; mutable exactly like COMPLETED.
    DRAFT = "draft"
    FAILED = "failed"
    CANCELLED = "cancelled"
    # Outcome reported when a watch gives up; never stored on an execution.
    UNKNOWN = "unknown"


NON_TERMINAL_STATUSES = frozenset(
    {
        ExecutionStatus.PENDING,
        ExecutionStatus.QUEUED,
        ExecutionStatus.RUNNING,
        ExecutionStatus.PROCESSING,
        ExecutionStatus.APPROVING,
    }
)
MUTABLE_STATUSES = frozenset({ExecutionStatus.COMPLETED, ExecutionStatus.DRAFT})
IMMUTABLE_STATUSES = frozenset({ExecutionStatus.APPROVED, ExecutionStatus.APPROVING})


class ExecutionMode(StrEnum):
    FULL = "full"
    FULL_SINGLE = "full-single"
    SINGLE = "single"
    FROM = "from"

    @property
    def creates_version(self) -> bool:
        """Full modes always create a new execution."""
        return self in (ExecutionMode.FULL, ExecutionMode.FULL_SINGLE)

    @property
    def is_partial(self) -> bool:
        """Partial modes modify an existing execution in place."""
        return self in (ExecutionMode.SINGLE, ExecutionMode.FROM)


class SectionOutput(BaseModel):
    """Generated content for one section within one execution."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    section_id: str | None = None
    content: str = ""

    @property
    def has_content(self) -> bool:
        return bool(self.content and self.content.strip())


class Execution(DocumentBase):
    """A version of a document produced by the generation service."""

    document_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    name: str = ""
    llm_id: str | None = None
    instructions: str = ""
    sections: list[SectionOutput] = Field(default_factory=list)

    @property
    def is_in_flight(self) -> bool:
        return self.status in NON_TERMINAL_STATUSES

    @property
    def is_mutable(self) -> bool:
        return self.status in MUTABLE_STATUSES

    @property
    def is_immutable(self) -> bool:
        return self.status in IMMUTABLE_STATUSES

    def section_index(self, section_id: str) -> int | None:
        """Return the position of ``section_id`` among this execution's outputs."""
        for index, output in enumerate(self.sections):
            if output.section_id == section_id:
                return index
        return None


class SectionStatusSnapshot(BaseModel):
    """Per-section status reported by the generation service."""

    section_id: str | None = None
    output: str | None = None
    status: str | None = None


class ExecutionSnapshot(BaseModel):
    """The generation service's view of an execution at poll time."""

    execution_id: str
    status: ExecutionStatus
    sections: list[SectionStatusSnapshot] = Field(default_factory=list)
    instruction: str | None = None
    llm_id: str | None = None
