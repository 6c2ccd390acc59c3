"""Tests for the mutual exclusion guard."""

import pytest

from docflow.coordinator.guard import MutualExclusionGuard, Operation
from docflow.coordinator.tracker import RegenerationEntry, SectionRegenerationTracker
from docflow.errors import ExecutionInProgress
from docflow.models.execution import ExecutionMode, ExecutionStatus
from docflow.store.executions import ExecutionStore


class TestMutualExclusionGuard:
    """Test the Mutual Exclusion Guard."""

    @pytest.fixture
    def store(self) -> ExecutionStore:
        return ExecutionStore()

    @pytest.fixture
    def tracker(self) -> SectionRegenerationTracker:
        return SectionRegenerationTracker()

    @pytest.fixture
    def guard(self, store, tracker) -> MutualExclusionGuard:
        return MutualExclusionGuard(store, tracker)

    def test_allows_idle_document(self, guard) -> None:
        """Verify an idle document allows any operation."""
        decision = guard.check("doc-1", Operation.FULL)

        assert decision.allowed
        assert not decision.attached

    def test_held_slot_rejects_other_operations(self, guard) -> None:
        """Verify a reserved document rejects every other operation."""
        guard.acquire("doc-1", Operation.FULL)

        for operation in (Operation.FULL, Operation.SINGLE, Operation.CLONE, Operation.APPROVE):
            decision = guard.check("doc-1", operation, execution_id="exec-1")
            assert not decision.allowed
            assert not decision.attached

    def test_acquire_raises_when_busy(self, guard) -> None:
        """Verify acquire raises ExecutionInProgress on a busy document."""
        guard.acquire("doc-1", Operation.APPROVE, execution_id="exec-1")

        with pytest.raises(ExecutionInProgress) as exc_info:
            guard.acquire("doc-1", Operation.DELETE, execution_id="exec-2")

        assert exc_info.value.document_id == "doc-1"
        assert exc_info.value.transition == "delete"

    def test_identical_partial_request_attaches(self, guard) -> None:
        """Verify a repeated single regeneration joins the in-flight one."""
        guard.acquire("doc-1", Operation.SINGLE, execution_id="exec-1", section_id="S2")

        decision = guard.check("doc-1", Operation.SINGLE, execution_id="exec-1", section_id="S2")

        assert decision.attached
        assert decision.attach_to == "exec-1"

    def test_other_start_section_is_rejected(self, guard) -> None:
        """Verify a single regeneration of another section does not attach."""
        guard.acquire("doc-1", Operation.SINGLE, execution_id="exec-1", section_id="S2")

        decision = guard.check("doc-1", Operation.SINGLE, execution_id="exec-1", section_id="S1")

        assert not decision.allowed
        assert not decision.attached

    def test_different_mode_is_rejected(self, guard) -> None:
        """Verify a from regeneration does not attach to a single one."""
        guard.acquire("doc-1", Operation.SINGLE, execution_id="exec-1")

        decision = guard.check("doc-1", Operation.FROM, execution_id="exec-1")

        assert not decision.allowed
        assert not decision.attached

    def test_release_frees_document(self, guard) -> None:
        """Verify releasing the slot allows new operations."""
        slot = guard.acquire("doc-1", Operation.CLONE, execution_id="exec-1")

        guard.release(slot)

        assert guard.check("doc-1", Operation.FULL).allowed
        assert guard.slot_for("doc-1") is None

    def test_release_of_stale_slot_is_ignored(self, guard) -> None:
        """Verify releasing an old slot does not free a newer reservation."""
        old = guard.acquire("doc-1", Operation.CLONE)
        guard.release(old)
        current = guard.acquire("doc-1", Operation.FULL)

        guard.release(old)

        assert guard.slot_for("doc-1") is current

    async def test_store_in_flight_execution_rejects(self, guard, store, make_execution) -> None:
        """Verify an in-flight execution loaded from the service blocks the document."""
        await store.insert(make_execution(status=ExecutionStatus.APPROVING))

        decision = guard.check("doc-1", Operation.CLONE, execution_id="exec-2")

        assert not decision.allowed
        assert "exec-1" in decision.reason

    async def test_tracked_partial_run_attaches_without_slot(
        self, guard, store, tracker, make_execution
    ) -> None:
        """Verify a tracked regeneration can be joined from the store state."""
        await store.insert(make_execution(status=ExecutionStatus.RUNNING))
        tracker.register(
            RegenerationEntry(
                execution_id="exec-1",
                document_id="doc-1",
                mode=ExecutionMode.FROM,
                section_id="S2",
                section_index=1,
                total_sections=3,
            )
        )

        decision = guard.check("doc-1", Operation.FROM, execution_id="exec-1", section_id="S2")
        other = guard.check("doc-1", Operation.FROM, execution_id="exec-1", section_id="S3")

        assert decision.attached
        assert not other.allowed
        assert not other.attached

    def test_other_documents_are_independent(self, guard) -> None:
        """Verify a busy document does not block another document."""
        guard.acquire("doc-1", Operation.APPROVE, execution_id="exec-1")

        assert guard.check("doc-2", Operation.FULL).allowed
