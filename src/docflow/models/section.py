"""Section model — ordered content units of a document."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class SectionType(StrEnum):
    AI = "ai"
    MANUAL = "manual"
    REFERENCE = "reference"


class Section(BaseModel):
    """A document section as configured by the document owner.

    Only ``ai`` sections can be regenerated; ``reference`` sections are
    read-only and cannot be edited, deleted or executed.
    """

    id: str
    document_id: str
    name: str = ""
    type: SectionType = SectionType.AI
    dependencies: set[str] = Field(default_factory=set)
    order: int = 0

    @property
    def is_regenerable(self) -> bool:
        return self.type == SectionType.AI

    @property
    def is_read_only(self) -> bool:
        return self.type == SectionType.REFERENCE
