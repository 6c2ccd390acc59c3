"""Section regeneration tracker — which sections of an execution are regenerating."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from docflow.models.execution import ExecutionMode, ExecutionStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegenerationEntry:
    """A partial regeneration in progress on one execution."""

    execution_id: str
    document_id: str
    mode: ExecutionMode
    section_id: str
    section_index: int
    total_sections: int

    def affects(self, index: int) -> bool:
        """Return True when the section at ``index`` is being regenerated."""
        if self.mode == ExecutionMode.SINGLE:
            return index == self.section_index
        if index < self.section_index:
            return False
        return self.total_sections <= 0 or index < self.total_sections

    @property
    def affected_indices(self) -> list[int]:
        if self.mode == ExecutionMode.SINGLE:
            return [self.section_index]
        return list(range(self.section_index, max(self.total_sections, self.section_index + 1)))


class SectionRegenerationTracker:
    """Derives per-section "regenerating" state from active partial executions.

    Entries live for the duration of the completion watch that owns them. A
    partial regeneration that ends in any status other than ``completed`` is
    remembered as a failure so callers can show a failure indicator while the
    previous content stays in place.
    """

    def __init__(self, *, keep_stale_content: bool = True) -> None:
        self._keep_stale_content = keep_stale_content
        self._active: dict[str, RegenerationEntry] = {}
        self._failed: dict[str, RegenerationEntry] = {}

    def register(self, entry: RegenerationEntry) -> None:
        if not entry.mode.is_partial:
            msg = f"Only partial modes are tracked, got {entry.mode}"
            raise ValueError(msg)
        self._failed.pop(entry.execution_id, None)
        self._active[entry.execution_id] = entry
        logger.debug(
            "Tracking regeneration — execution=%s mode=%s section=%s index=%d",
            entry.execution_id,
            entry.mode,
            entry.section_id,
            entry.section_index,
        )

    def get(self, execution_id: str) -> RegenerationEntry | None:
        return self._active.get(execution_id)

    def is_regenerating(self, execution_id: str, section_index: int) -> bool:
        entry = self._active.get(execution_id)
        return entry is not None and entry.affects(section_index)

    def affected_indices(self, execution_id: str) -> list[int]:
        entry = self._active.get(execution_id)
        return entry.affected_indices if entry else []

    def should_display_existing(self, execution_id: str, section_index: int) -> bool:
        """Return whether the current content of a section should stay visible."""
        return self._keep_stale_content or not self.is_regenerating(
            execution_id, section_index
        )

    def complete(
        self, execution_id: str, final_status: ExecutionStatus
    ) -> RegenerationEntry | None:
        """Stop tracking an execution, remembering it when it did not complete."""
        entry = self._active.pop(execution_id, None)
        if entry is not None and final_status != ExecutionStatus.COMPLETED:
            self._failed[execution_id] = entry
            logger.warning(
                "Regeneration ended without completing — execution=%s status=%s",
                execution_id,
                final_status,
            )
        return entry

    def discard(self, execution_id: str) -> None:
        """Forget an execution without recording an outcome (watch cancelled)."""
        self._active.pop(execution_id, None)

    def failed_sections(self, execution_id: str) -> list[int]:
        entry = self._failed.get(execution_id)
        return entry.affected_indices if entry else []

    def clear_failure(self, execution_id: str) -> None:
        self._failed.pop(execution_id, None)
