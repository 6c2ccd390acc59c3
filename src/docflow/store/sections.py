"""Section catalogue per document with optimistic-concurrency reordering."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from docflow.errors import ReorderConflict, SectionNotFound

if TYPE_CHECKING:
    from collections.abc import Iterable

    from docflow.models.section import Section

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SectionSnapshot:
    """An ordered view of a document's sections at a given version."""

    document_id: str
    version: int
    sections: tuple[Section, ...]

    @property
    def section_ids(self) -> list[str]:
        return [section.id for section in self.sections]

    def index_of(self, section_id: str) -> int | None:
        for index, section in enumerate(self.sections):
            if section.id == section_id:
                return index
        return None


class SectionStore:
    """Holds each document's ordered sections and a write version counter.

    Every write bumps the version. A reorder is applied only when the caller's
    ``expected_version`` still matches, so a write observed after the caller's
    snapshot rejects the reorder instead of silently overwriting it.
    """

    def __init__(self) -> None:
        self._sections: dict[str, list[Section]] = {}
        self._versions: dict[str, int] = {}

    def snapshot(self, document_id: str) -> SectionSnapshot:
        sections = self._sections.get(document_id, [])
        return SectionSnapshot(
            document_id=document_id,
            version=self._versions.get(document_id, 0),
            sections=tuple(section.model_copy(deep=True) for section in sections),
        )

    def sections(self, document_id: str) -> list[Section]:
        return list(self.snapshot(document_id).sections)

    def get(self, document_id: str, section_id: str) -> Section:
        for section in self._sections.get(document_id, []):
            if section.id == section_id:
                return section.model_copy(deep=True)
        raise SectionNotFound(
            f"Section {section_id} not found in document {document_id}",
            document_id=document_id,
        )

    def replace(self, document_id: str, sections: Iterable[Section]) -> SectionSnapshot:
        """Replace the document's sections with an authoritative list."""
        ordered = sorted(
            (section.model_copy(deep=True) for section in sections),
            key=lambda s: s.order,
        )
        self._sections[document_id] = ordered
        self._versions[document_id] = self._versions.get(document_id, 0) + 1
        return self.snapshot(document_id)

    def reorder(
        self,
        document_id: str,
        ordering: list[str],
        *,
        expected_version: int,
    ) -> SectionSnapshot:
        """Apply a full desired ordering atomically or raise ``ReorderConflict``."""
        current_version = self._versions.get(document_id, 0)
        if expected_version != current_version:
            logger.info(
                "Reorder rejected — document=%s expected_version=%d current=%d",
                document_id,
                expected_version,
                current_version,
            )
            raise ReorderConflict(
                f"Sections of document {document_id} changed since version "
                f"{expected_version}",
                document_id=document_id,
                current_version=current_version,
            )

        by_id = {section.id: section for section in self._sections.get(document_id, [])}
        if len(ordering) != len(by_id) or set(ordering) != set(by_id):
            raise SectionNotFound(
                "Ordering must be a permutation of the document's section ids",
                document_id=document_id,
                transition="reorder",
            )

        reordered = []
        for position, section_id in enumerate(ordering, start=1):
            section = by_id[section_id].model_copy(update={"order": position})
            reordered.append(section)
        self._sections[document_id] = reordered
        self._versions[document_id] = current_version + 1
        return self.snapshot(document_id)
