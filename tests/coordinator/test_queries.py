"""Tests for document loading, selection and the document state queries."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from conftest import snapshot

from docflow.coordinator import View
from docflow.errors import ExecutionInProgress, ExecutionNotFound
from docflow.models.execution import ExecutionMode, ExecutionStatus

S = ExecutionStatus


class TestLoadDocument:
    """Test reconciling local state with the generation service."""

    async def test_load_replaces_local_state(
        self, coordinator, service, make_execution, make_sections
    ) -> None:
        """Verify loading mirrors the service listing and drops unknown executions."""
        await coordinator.store.insert(make_execution("exec-local"))
        service.executions["doc-1"] = [make_execution("exec-1")]
        service.sections["doc-1"] = make_sections()

        executions = await coordinator.load_document("doc-1")

        assert [e.id for e in executions] == ["exec-1"]
        assert coordinator.store.find("exec-local") is None
        assert [s.id for s in coordinator.list_sections("doc-1")] == ["S1", "S2", "S3"]

    async def test_load_invalidates_cached_views(
        self, coordinator, service, make_sections
    ) -> None:
        """Verify every cached view of the document is dropped on load."""
        service.sections["doc-1"] = make_sections()
        await coordinator.cache.get("doc-1", View.VERSIONS, AsyncMock(return_value=[]))

        await coordinator.load_document("doc-1")

        assert not coordinator.cache.is_cached("doc-1", View.VERSIONS)

    async def test_load_resumes_in_flight_watch(
        self, coordinator, service, make_execution, make_sections
    ) -> None:
        """Verify a running execution found on load is watched to completion."""
        service.executions["doc-1"] = [
            make_execution("exec-1"),
            make_execution("exec-2", status=S.RUNNING, contents={}),
        ]
        service.sections["doc-1"] = make_sections()
        service.script(
            "exec-2",
            snapshot("exec-2", S.RUNNING),
            snapshot("exec-2", S.COMPLETED, {"S1": "a"}),
        )

        await coordinator.load_document("doc-1")
        watch = coordinator.watch_completion("exec-2")
        event = await asyncio.wait_for(watch.wait(), timeout=2)

        assert event.final_status == S.COMPLETED
        assert coordinator.store.get("exec-2").sections[0].content == "a"

    async def test_load_resumes_approval(
        self, coordinator, service, make_execution, make_sections
    ) -> None:
        """Verify an approving execution found on load resumes its approval watch."""
        service.executions["doc-1"] = [make_execution("exec-1", status=S.APPROVING)]
        service.sections["doc-1"] = make_sections()
        service.script("exec-1", snapshot("exec-1", S.APPROVED))

        await coordinator.load_document("doc-1")
        event = await asyncio.wait_for(
            coordinator.watch_completion("exec-1").wait(), timeout=2
        )

        assert event.final_status == S.APPROVED
        assert coordinator.store.status_of("exec-1") == S.APPROVED

    async def test_reload_picks_up_remote_regeneration(
        self, coordinator, service, make_execution, make_sections
    ) -> None:
        """Verify work started elsewhere on a known version blocks the document after reload."""
        service.executions["doc-1"] = [make_execution("exec-1")]
        service.sections["doc-1"] = make_sections()
        await coordinator.load_document("doc-1")

        service.executions["doc-1"] = [make_execution("exec-1", status=S.RUNNING)]
        await coordinator.load_document("doc-1")

        assert coordinator.store.status_of("exec-1") == S.RUNNING
        assert coordinator.has_execution_in_process("doc-1")
        with pytest.raises(ExecutionInProgress):
            await coordinator.regenerate(
                "exec-1", "S2", None, "", mode=ExecutionMode.SINGLE
            )
        assert service.called("create_execution") == []

    async def test_reload_picks_up_remote_disapproval(
        self, coordinator, service, make_execution, make_sections
    ) -> None:
        """Verify a version disapproved elsewhere becomes an editable draft after reload."""
        service.executions["doc-1"] = [make_execution("exec-1", status=S.APPROVED)]
        service.sections["doc-1"] = make_sections()
        await coordinator.load_document("doc-1")

        service.executions["doc-1"] = [make_execution("exec-1", status=S.DRAFT)]
        await coordinator.load_document("doc-1")

        assert coordinator.store.status_of("exec-1") == S.DRAFT
        assert coordinator.store.get("exec-1").is_mutable


class TestWatching:
    """Test watching and syncing individual executions."""

    async def test_resumed_partial_run_keeps_content_until_done(
        self, coordinator, service, make_execution
    ) -> None:
        """Verify a resumed partial watch only applies outputs on completion."""
        await coordinator.store.insert(make_execution(status=S.RUNNING))
        service.script(
            "exec-1",
            snapshot("exec-1", S.RUNNING, {"S1": "partial"}),
            snapshot("exec-1", S.COMPLETED, {"S1": "done"}),
        )

        watch = coordinator.watch_completion("exec-1", mode=ExecutionMode.SINGLE)
        await asyncio.wait_for(watch.wait(), timeout=2)

        assert coordinator.store.get("exec-1").sections[0].content == "done"

    async def test_cancel_watch_discards_late_results(
        self, coordinator, service, make_execution
    ) -> None:
        """Verify a cancelled watch never applies a later status."""
        await coordinator.store.insert(make_execution(status=S.RUNNING))

        watch = coordinator.watch_completion("exec-1")
        await coordinator.cancel_watch("exec-1")
        service.script("exec-1", snapshot("exec-1", S.COMPLETED))
        await asyncio.sleep(0.01)

        assert await watch.wait() is None
        assert coordinator.store.status_of("exec-1") == S.RUNNING

    async def test_sync_without_watch(self, coordinator, service, make_execution) -> None:
        """Verify sync fetches and applies the authoritative status once."""
        await coordinator.store.insert(make_execution(status=S.RUNNING, contents={}))
        service.script("exec-1", snapshot("exec-1", S.FAILED))

        execution = await coordinator.sync("exec-1")

        assert execution.status == S.FAILED
        assert service.status_calls == 1

    async def test_sync_unknown_execution(self, coordinator) -> None:
        """Verify syncing an unknown execution raises."""
        with pytest.raises(ExecutionNotFound):
            await coordinator.sync("exec-9")


class TestDocumentQueries:
    """Test the per-document state flags."""

    async def test_pending_flags(self, coordinator, make_execution) -> None:
        """Verify pending flags distinguish empty from partially generated runs."""
        assert not coordinator.has_pending_execution("doc-1")

        await coordinator.store.insert(make_execution("exec-p", status=S.PENDING, contents={}))

        assert coordinator.has_pending_execution("doc-1")
        assert coordinator.has_new_pending_execution("doc-1")
        assert coordinator.has_execution_in_process("doc-1")

        execution = coordinator.store.get("exec-p")
        execution.sections = make_execution(contents={"S1": "a"}).sections
        await coordinator.store.upsert(execution)

        assert coordinator.has_pending_execution("doc-1")
        assert not coordinator.has_new_pending_execution("doc-1")

    async def test_active_prefers_latest_approved(self, coordinator, make_execution) -> None:
        """Verify the active version is the latest approved, else the latest."""
        await coordinator.store.insert(make_execution("exec-1", status=S.APPROVED))
        await asyncio.sleep(0.001)
        await coordinator.store.insert(make_execution("exec-2"))

        assert coordinator.active_execution("doc-1").id == "exec-1"
        selected = coordinator.selected_execution("doc-1")
        assert selected.execution.id == "exec-1"
        assert not selected.is_latest

        coordinator.select("doc-1", "exec-2")

        assert coordinator.selected_execution("doc-1").is_latest

    async def test_selected_execution_empty_document(self, coordinator) -> None:
        """Verify a document without executions has no selection."""
        assert coordinator.selected_execution("doc-1") is None
        assert coordinator.active_execution("doc-1") is None

    async def test_select_unknown_execution(self, coordinator) -> None:
        """Verify selecting an unknown execution raises."""
        with pytest.raises(ExecutionNotFound):
            coordinator.select("doc-1", "exec-9")


class TestNotifications:
    """Test in-progress notices for versions other than the selected one."""

    @pytest.fixture
    async def busy(self, coordinator, make_execution):
        await coordinator.store.insert(make_execution("exec-1"))
        await asyncio.sleep(0.001)
        await coordinator.store.insert(make_execution("exec-2", status=S.RUNNING, contents={}))
        coordinator.select("doc-1", "exec-1")
        return coordinator

    async def test_other_version_is_reported(self, busy) -> None:
        """Verify a running version that is not selected warrants a notice."""
        assert [e.id for e in busy.other_version_active_executions("doc-1")] == ["exec-2"]
        assert busy.should_notify("doc-1", "exec-2")
        assert not busy.should_notify("doc-1", "exec-1")

    async def test_dismissed_version_is_hidden(self, busy) -> None:
        """Verify a dismissed notice stays hidden until the selection changes."""
        busy.dismiss("doc-1", "exec-2")

        assert busy.other_version_active_executions("doc-1") == []
        assert not busy.should_notify("doc-1", "exec-2")

        busy.select("doc-1", "exec-2")
        busy.select("doc-1", "exec-1")

        assert busy.should_notify("doc-1", "exec-2")

    async def test_selected_version_is_not_reported(self, busy) -> None:
        """Verify the selected version never appears as another active version."""
        busy.select("doc-1", "exec-2")

        assert busy.other_version_active_executions("doc-1") == []

    async def test_regenerating_execution_is_not_reported(
        self, coordinator, service, make_execution, make_sections
    ) -> None:
        """Verify section regenerations do not raise version notices."""
        coordinator.sections.replace("doc-1", make_sections())
        await coordinator.store.insert(make_execution("exec-1"))
        await asyncio.sleep(0.001)
        await coordinator.store.insert(make_execution("exec-2"))
        coordinator.select("doc-1", "exec-2")

        await coordinator.regenerate("exec-1", "S1", None, "", mode=ExecutionMode.SINGLE)

        assert coordinator.other_version_active_executions("doc-1") == []
        assert not coordinator.should_notify("doc-1", "exec-1")
