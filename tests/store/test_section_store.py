"""Tests for the section store and its optimistic-concurrency reorder."""

import pytest

from docflow.errors import ReorderConflict, SectionNotFound
from docflow.store.sections import SectionStore


class TestSectionStore:
    """Test the Section Store."""

    @pytest.fixture
    def store(self, make_sections) -> SectionStore:
        store = SectionStore()
        store.replace("doc-1", list(reversed(make_sections())))
        return store

    def test_replace_sorts_by_order_and_bumps_version(self, store) -> None:
        """Verify sections are kept in order and each write bumps the version."""
        snapshot = store.snapshot("doc-1")

        assert snapshot.section_ids == ["S1", "S2", "S3"]
        assert snapshot.version == 1
        assert snapshot.index_of("S3") == 2

    def test_unknown_document_is_empty(self, store) -> None:
        """Verify an unknown document has no sections at version 0."""
        snapshot = store.snapshot("other")

        assert snapshot.sections == ()
        assert snapshot.version == 0

    def test_reorder_applies_full_ordering(self, store) -> None:
        """Verify a reorder renumbers sections and bumps the version."""
        snapshot = store.reorder("doc-1", ["S3", "S1", "S2"], expected_version=1)

        assert snapshot.section_ids == ["S3", "S1", "S2"]
        assert [s.order for s in snapshot.sections] == [1, 2, 3]
        assert snapshot.version == 2

    def test_reorder_with_stale_version_conflicts(self, store) -> None:
        """Verify a reorder taken before another write is rejected."""
        store.reorder("doc-1", ["S2", "S1", "S3"], expected_version=1)

        with pytest.raises(ReorderConflict) as exc_info:
            store.reorder("doc-1", ["S3", "S2", "S1"], expected_version=1)

        assert exc_info.value.current_version == 2
        assert store.snapshot("doc-1").section_ids == ["S2", "S1", "S3"]

    def test_reorder_requires_permutation(self, store) -> None:
        """Verify orderings that drop or invent sections are rejected."""
        with pytest.raises(SectionNotFound):
            store.reorder("doc-1", ["S1", "S2"], expected_version=1)
        with pytest.raises(SectionNotFound):
            store.reorder("doc-1", ["S1", "S2", "S9"], expected_version=1)

    def test_get_missing_section_raises(self, store) -> None:
        """Verify get raises SectionNotFound."""
        with pytest.raises(SectionNotFound):
            store.get("doc-1", "S9")
