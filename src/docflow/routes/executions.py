"""Execution routes — request, watch, approve, clone, delete and edit executions."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from docflow.coordinator import ExecutionRequest
from docflow.models.execution import Execution, ExecutionMode

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from docflow.coordinator import CompletionEvent, CompletionWatch, ExecutionCoordinator

router = APIRouter(tags=["executions"])
logger = logging.getLogger(__name__)


class ExecutionRequestBody(BaseModel):
    mode: ExecutionMode = ExecutionMode.FULL
    llm_id: str | None = None
    instructions: str = ""
    section_id: str | None = None
    execution_id: str | None = None


class SectionOutputBody(BaseModel):
    content: str = ""


class AddSectionOutputBody(BaseModel):
    section_id: str
    after_section_id: str | None = None


def _coordinator(request: Request) -> ExecutionCoordinator:
    return request.app.state.coordinator


def completion_payload(event: CompletionEvent) -> dict[str, Any]:
    return {
        "execution_id": event.execution_id,
        "kind": event.kind,
        "final_status": event.final_status,
        "mode": event.mode,
        "succeeded": event.succeeded,
        "error": event.error.to_dict() if event.error else None,
    }


async def _sse(watch: CompletionWatch) -> AsyncIterator[str]:
    async for event in watch.events():
        yield f"event: completed\ndata: {json.dumps(completion_payload(event))}\n\n"
    logger.debug("Completion stream closed — execution=%s", watch.execution_id)


@router.get("/documents/{document_id}/executions")
async def list_executions(
    request: Request, document_id: str, refresh: bool = False  # noqa: FBT001, FBT002
) -> list[Execution]:
    """List a document's executions, most recent first."""
    coordinator = _coordinator(request)
    if refresh:
        return await coordinator.load_document(document_id)
    return coordinator.list_executions(document_id)


@router.post("/documents/{document_id}/executions", status_code=status.HTTP_202_ACCEPTED)
async def request_execution(
    request: Request, document_id: str, body: ExecutionRequestBody
) -> dict[str, Any]:
    """Dispatch a generation in any mode; returns immediately with a handle."""
    coordinator = _coordinator(request)
    handle = await coordinator.request_execution(
        document_id,
        body.mode,
        ExecutionRequest(
            llm_id=body.llm_id,
            instructions=body.instructions,
            section_id=body.section_id,
            execution_id=body.execution_id,
        ),
    )
    return {
        "execution_id": handle.execution_id,
        "document_id": handle.document_id,
        "mode": handle.mode,
        "section_index": handle.section_index,
        "attached": handle.attached,
        "events_url": f"/executions/{handle.execution_id}/events",
    }


@router.get("/executions/{execution_id}")
async def get_execution(request: Request, execution_id: str) -> Execution:
    return _coordinator(request).store.get(execution_id)


@router.get("/executions/{execution_id}/events")
async def execution_events(request: Request, execution_id: str) -> StreamingResponse:
    """Server-sent event stream that emits the completion event once."""
    watch = _coordinator(request).watch_completion(execution_id)
    return StreamingResponse(_sse(watch), media_type="text/event-stream")


@router.delete("/executions/{execution_id}/watch", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_watch(request: Request, execution_id: str) -> None:
    await _coordinator(request).cancel_watch(execution_id)


@router.post("/executions/{execution_id}/sync")
async def sync_execution(request: Request, execution_id: str) -> Execution:
    """Fetch the authoritative status now (manual refresh)."""
    return await _coordinator(request).sync(execution_id)


@router.post("/executions/{execution_id}/approve", status_code=status.HTTP_202_ACCEPTED)
async def approve_execution(request: Request, execution_id: str) -> dict[str, Any]:
    handle = await _coordinator(request).approve(execution_id)
    return {
        "execution_id": handle.execution_id,
        "document_id": handle.document_id,
        "events_url": f"/executions/{handle.execution_id}/events",
    }


@router.post("/executions/{execution_id}/disapprove")
async def disapprove_execution(request: Request, execution_id: str) -> Execution:
    return await _coordinator(request).disapprove(execution_id)


@router.post("/executions/{execution_id}/clone", status_code=status.HTTP_201_CREATED)
async def clone_execution(request: Request, execution_id: str) -> Execution:
    return await _coordinator(request).clone(execution_id)


@router.delete("/executions/{execution_id}")
async def delete_execution(request: Request, execution_id: str) -> dict[str, Any]:
    """Delete an execution and report the version that becomes selected."""
    successor = await _coordinator(request).delete(execution_id)
    return {"deleted": execution_id, "active_execution_id": successor.id if successor else None}


@router.get("/executions/{execution_id}/sections/state")
async def section_state(request: Request, execution_id: str) -> list[dict[str, Any]]:
    """Per-section regeneration and failure flags for an execution."""
    coordinator = _coordinator(request)
    execution = coordinator.store.get(execution_id)
    failed = set(coordinator.failed_sections(execution_id))
    return [
        {
            "index": index,
            "section_id": output.section_id,
            "regenerating": coordinator.is_section_regenerating(execution_id, index),
            "failed": index in failed,
            "has_content": output.has_content,
        }
        for index, output in enumerate(execution.sections)
    ]


@router.put("/executions/{execution_id}/sections/{section_id}")
async def update_section_output(
    request: Request, execution_id: str, section_id: str, body: SectionOutputBody
) -> Execution:
    return await _coordinator(request).update_section_output(
        execution_id, section_id, body.content
    )


@router.delete("/executions/{execution_id}/sections/{section_id}")
async def delete_section_output(
    request: Request, execution_id: str, section_id: str
) -> Execution:
    return await _coordinator(request).delete_section_output(execution_id, section_id)


@router.post("/executions/{execution_id}/sections", status_code=status.HTTP_201_CREATED)
async def add_section_output(
    request: Request, execution_id: str, body: AddSectionOutputBody
) -> Execution:
    return await _coordinator(request).add_section_output(
        execution_id, body.section_id, after_section_id=body.after_section_id
    )
