"""Document routes — version selection, in-progress notices and document state."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request, status
from pydantic import BaseModel

from docflow.models.execution import Execution

if TYPE_CHECKING:
    from docflow.coordinator import ExecutionCoordinator

router = APIRouter(prefix="/documents", tags=["documents"])


class SelectionBody(BaseModel):
    execution_id: str | None = None


def _coordinator(request: Request) -> ExecutionCoordinator:
    return request.app.state.coordinator


@router.post("/{document_id}/load")
async def load_document(request: Request, document_id: str) -> list[Execution]:
    """Reconcile the document with the generation service."""
    return await _coordinator(request).load_document(document_id)


@router.get("/{document_id}/state")
async def document_state(request: Request, document_id: str) -> dict[str, Any]:
    """Summarise the document for banners and action buttons."""
    coordinator = _coordinator(request)
    active = coordinator.active_execution(document_id)
    selected = coordinator.selected_execution(document_id)
    return {
        "document_id": document_id,
        "has_execution_in_process": coordinator.has_execution_in_process(document_id),
        "has_pending_execution": coordinator.has_pending_execution(document_id),
        "has_new_pending_execution": coordinator.has_new_pending_execution(document_id),
        "active_execution_id": active.id if active else None,
        "selected_execution_id": selected.execution.id if selected else None,
        "selected_is_latest": selected.is_latest if selected else False,
        "other_version_active_execution_ids": [
            execution.id
            for execution in coordinator.other_version_active_executions(document_id)
        ],
    }


@router.put("/{document_id}/selection", status_code=status.HTTP_204_NO_CONTENT)
async def select_version(request: Request, document_id: str, body: SelectionBody) -> None:
    _coordinator(request).select(document_id, body.execution_id)


@router.get("/{document_id}/notifications")
async def notifications(request: Request, document_id: str) -> list[dict[str, Any]]:
    """In-flight executions the user should still be told about."""
    coordinator = _coordinator(request)
    return [
        {"execution_id": execution.id, "status": execution.status}
        for execution in coordinator.list_executions(document_id)
        if coordinator.should_notify(document_id, execution.id)
    ]


@router.post(
    "/{document_id}/notifications/{execution_id}/dismiss",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def dismiss_notification(request: Request, document_id: str, execution_id: str) -> None:
    _coordinator(request).dismiss(document_id, execution_id)
