"""Notification ledger — which in-flight executions the user already dismissed."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class NotificationLedger:
    """Per-document dismissed set, scoped to the active document and version.

    Switching to another document drops the previous document's entries and
    starts the new one empty; switching versions within a document clears it.
    """

    def __init__(self) -> None:
        self._dismissed: dict[str, set[str]] = {}
        self._selected: dict[str, str | None] = {}
        self._active_document: str | None = None

    @property
    def active_document(self) -> str | None:
        return self._active_document

    def selected(self, document_id: str) -> str | None:
        return self._selected.get(document_id)

    def select(self, document_id: str, execution_id: str | None = None) -> bool:
        """Record the active document and version. Returns True when cleared."""
        cleared = False
        if self._active_document != document_id:
            if self._active_document is not None:
                self._dismissed.pop(self._active_document, None)
                self._selected.pop(self._active_document, None)
            self._dismissed.pop(document_id, None)
            self._active_document = document_id
            cleared = True
        elif self._selected.get(document_id) != execution_id:
            self._dismissed.pop(document_id, None)
            cleared = True
        self._selected[document_id] = execution_id
        return cleared

    def dismiss(self, document_id: str, execution_id: str) -> None:
        self._dismissed.setdefault(document_id, set()).add(execution_id)
        logger.debug("Notification dismissed — document=%s execution=%s", document_id, execution_id)

    def auto_dismiss(self, document_id: str, execution_id: str) -> None:
        """Dismiss on behalf of the user once a partial regeneration completes."""
        self._dismissed.setdefault(document_id, set()).add(execution_id)
        logger.debug(
            "Notification auto-dismissed — document=%s execution=%s",
            document_id,
            execution_id,
        )

    def is_dismissed(self, document_id: str, execution_id: str) -> bool:
        return execution_id in self._dismissed.get(document_id, set())

    def dismissed(self, document_id: str) -> frozenset[str]:
        return frozenset(self._dismissed.get(document_id, set()))
