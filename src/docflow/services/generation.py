"""Generation service contract and its HTTP client.

The coordinator never generates content itself; it dispatches requests to this
service and observes progress by polling ``get_execution_status``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx

from docflow.errors import (
    CoordinatorError,
    ExecutionInProgress,
    ExecutionNotFound,
    InvalidTransition,
    ReorderConflict,
    TransportFailure,
)
from docflow.models.execution import (
    Execution,
    ExecutionMode,
    ExecutionSnapshot,
    SectionOutput,
)
from docflow.models.section import Section

if TYPE_CHECKING:
    from docflow.config import GenerationServiceConfig

logger = logging.getLogger(__name__)

_HTTP_NOT_FOUND = 404
_HTTP_CONFLICT = 409
_HTTP_PRECONDITION_FAILED = 412
_HTTP_SERVER_ERROR = 500


@dataclass(frozen=True)
class CreateExecutionAck:
    """Acknowledgement returned when the service accepts a generation request."""

    execution_id: str
    job_id: str | None = None


@runtime_checkable
class GenerationService(Protocol):
    """Operations the coordinator consumes from the generation service."""

    async def create_execution(
        self,
        document_id: str,
        llm_id: str | None,
        instructions: str,
        mode: ExecutionMode,
        *,
        start_section_id: str | None = None,
        execution_id: str | None = None,
    ) -> CreateExecutionAck: ...

    async def get_execution_status(self, execution_id: str) -> ExecutionSnapshot: ...

    async def approve_execution(self, execution_id: str) -> None: ...

    async def disapprove_execution(self, execution_id: str) -> None: ...

    async def clone_execution(self, execution_id: str) -> str: ...

    async def delete_execution(self, execution_id: str) -> None: ...

    async def list_executions(self, document_id: str) -> list[Execution]: ...

    async def list_sections(self, document_id: str) -> list[Section]: ...

    async def update_section_order(self, document_id: str, ordering: list[str]) -> None: ...

    async def update_section_output(
        self, execution_id: str, section_id: str, content: str
    ) -> None: ...

    async def delete_section_output(self, execution_id: str, section_id: str) -> None: ...

    async def add_section_output(
        self,
        execution_id: str,
        section_id: str,
        *,
        after_section_id: str | None = None,
    ) -> SectionOutput: ...


def _unwrap(body: Any) -> Any:
    """Strip the ``{"data": ...}`` envelope the service wraps responses in."""
    if isinstance(body, dict) and set(body) <= {"data", "message", "success"} and "data" in body:
        return body["data"]
    return body


def _section_output_from_payload(payload: dict[str, Any]) -> SectionOutput:
    data: dict[str, Any] = {
        "section_id": payload.get("section_id"),
        "content": payload.get("output") or payload.get("content") or "",
    }
    if payload.get("id"):
        data["id"] = payload["id"]
    return SectionOutput.model_validate(data)


def _execution_from_payload(payload: dict[str, Any], document_id: str) -> Execution:
    data = {key: value for key, value in payload.items() if key != "sections"}
    data.setdefault("document_id", document_id)
    if "instructions" not in data and "instruction" in data:
        data["instructions"] = data.pop("instruction") or ""
    execution = Execution.model_validate(data)
    execution.sections = [
        _section_output_from_payload(section) for section in payload.get("sections") or []
    ]
    return execution


class HttpGenerationClient:
    """``GenerationService`` implementation over the service's REST API."""

    def __init__(
        self,
        config: GenerationServiceConfig,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        self._config = config
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            headers=headers,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        execution_id: str | None = None,
        document_id: str | None = None,
    ) -> Any:
        """Send a request and translate transport and HTTP errors to typed errors."""
        context = {"execution_id": execution_id, "document_id": document_id}
        try:
            response = await self._client.request(method, path, json=json, headers=headers)
        except httpx.TransportError as exc:
            logger.warning("Generation service unreachable — %s %s: %s", method, path, exc)
            raise TransportFailure(
                f"Generation service unreachable: {exc}", transition=f"{method} {path}", **context
            ) from exc

        status = response.status_code
        if status >= _HTTP_SERVER_ERROR:
            raise TransportFailure(
                f"Generation service returned {status}", transition=f"{method} {path}", **context
            )
        if status == _HTTP_NOT_FOUND:
            raise ExecutionNotFound(f"{path} not found", **context)
        if status == _HTTP_CONFLICT:
            raise ExecutionInProgress(
                "Generation service reports an operation in progress",
                transition=f"{method} {path}",
                **context,
            )
        if status == _HTTP_PRECONDITION_FAILED:
            raise ReorderConflict(
                "Generation service rejected a stale write", document_id=document_id
            )
        if response.is_client_error:
            raise InvalidTransition(
                f"Generation service rejected {method} {path} with {status}: {response.text}",
                transition=f"{method} {path}",
                **context,
            )
        if status == 204 or not response.content:
            return None
        try:
            return _unwrap(response.json())
        except ValueError as exc:
            raise CoordinatorError(
                f"Generation service returned a non-JSON body for {method} {path}",
                **context,
            ) from exc

    async def create_execution(
        self,
        document_id: str,
        llm_id: str | None,
        instructions: str,
        mode: ExecutionMode,
        *,
        start_section_id: str | None = None,
        execution_id: str | None = None,
    ) -> CreateExecutionAck:
        """Request a new execution or an in-place partial regeneration."""
        body: dict[str, Any] = {
            "document_id": document_id,
            "llm_id": llm_id,
            "instructions": instructions,
            "mode": mode.value,
        }
        if mode.is_partial:
            body["start_section_id"] = start_section_id
            body["execution_id"] = execution_id
        data = await self._request(
            "POST", "/executions", json=body, document_id=document_id, execution_id=execution_id
        )
        ack = CreateExecutionAck(
            execution_id=str(data.get("execution_id") or data.get("id")),
            job_id=data.get("job_id"),
        )
        logger.info(
            "Execution accepted — document=%s mode=%s execution=%s job=%s",
            document_id,
            mode,
            ack.execution_id,
            ack.job_id,
        )
        return ack

    async def get_execution_status(self, execution_id: str) -> ExecutionSnapshot:
        data = await self._request(
            "GET", f"/executions/{execution_id}/status", execution_id=execution_id
        )
        data.setdefault("execution_id", execution_id)
        return ExecutionSnapshot.model_validate(data)

    async def approve_execution(self, execution_id: str) -> None:
        await self._request(
            "POST", f"/executions/{execution_id}/approve", execution_id=execution_id
        )

    async def disapprove_execution(self, execution_id: str) -> None:
        await self._request(
            "POST", f"/executions/{execution_id}/disapprove", execution_id=execution_id
        )

    async def clone_execution(self, execution_id: str) -> str:
        data = await self._request(
            "POST", f"/executions/{execution_id}/clone", execution_id=execution_id
        )
        return str(data.get("execution_id") or data.get("id"))

    async def delete_execution(self, execution_id: str) -> None:
        await self._request("DELETE", f"/executions/{execution_id}", execution_id=execution_id)

    async def list_executions(self, document_id: str) -> list[Execution]:
        data = await self._request(
            "GET", f"/documents/{document_id}/executions", document_id=document_id
        )
        return [_execution_from_payload(item, document_id) for item in data or []]

    async def list_sections(self, document_id: str) -> list[Section]:
        data = await self._request(
            "GET", f"/documents/{document_id}/sections", document_id=document_id
        )
        sections = []
        for item in data or []:
            item.setdefault("document_id", document_id)
            sections.append(Section.model_validate(item))
        return sections

    async def update_section_order(self, document_id: str, ordering: list[str]) -> None:
        """Submit a full desired ordering; the service applies it atomically."""
        await self._request(
            "PUT",
            f"/documents/{document_id}/sections/order",
            json={
                "sections": [
                    {"section_id": section_id, "order": position}
                    for position, section_id in enumerate(ordering, start=1)
                ]
            },
            document_id=document_id,
        )

    async def update_section_output(
        self, execution_id: str, section_id: str, content: str
    ) -> None:
        await self._request(
            "PUT",
            f"/executions/{execution_id}/sections/{section_id}",
            json={"content": content},
            execution_id=execution_id,
        )

    async def delete_section_output(self, execution_id: str, section_id: str) -> None:
        await self._request(
            "DELETE",
            f"/executions/{execution_id}/sections/{section_id}",
            execution_id=execution_id,
        )

    async def add_section_output(
        self,
        execution_id: str,
        section_id: str,
        *,
        after_section_id: str | None = None,
    ) -> SectionOutput:
        data = await self._request(
            "POST",
            f"/executions/{execution_id}/sections",
            json={"section_id": section_id, "after_from": after_section_id},
            execution_id=execution_id,
        )
        return _section_output_from_payload(data or {"section_id": section_id})
