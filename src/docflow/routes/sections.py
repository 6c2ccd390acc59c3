"""Section routes — ordered catalogue and optimistic-concurrency reorder."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request
from pydantic import BaseModel

if TYPE_CHECKING:
    from docflow.coordinator import ExecutionCoordinator
    from docflow.store.sections import SectionSnapshot

router = APIRouter(prefix="/documents", tags=["sections"])


class ReorderBody(BaseModel):
    ordering: list[str]
    expected_version: int


def _snapshot_payload(snapshot: SectionSnapshot) -> dict[str, Any]:
    return {
        "document_id": snapshot.document_id,
        "version": snapshot.version,
        "sections": [section.model_dump(mode="json") for section in snapshot.sections],
    }


@router.get("/{document_id}/sections")
async def list_sections(request: Request, document_id: str) -> dict[str, Any]:
    coordinator: ExecutionCoordinator = request.app.state.coordinator
    return _snapshot_payload(coordinator.sections.snapshot(document_id))


@router.put("/{document_id}/sections/order")
async def reorder_sections(
    request: Request, document_id: str, body: ReorderBody
) -> dict[str, Any]:
    """Apply a full ordering taken at ``expected_version``."""
    coordinator: ExecutionCoordinator = request.app.state.coordinator
    snapshot = await coordinator.reorder_sections(
        document_id, body.ordering, expected_version=body.expected_version
    )
    return _snapshot_payload(snapshot)
