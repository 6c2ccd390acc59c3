"""FastAPI application — HTTP surface of the execution coordinator."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from docflow.config import load_settings
from docflow.coordinator import ExecutionCoordinator
from docflow.errors import (
    CoordinatorError,
    DuplicateExecution,
    ExecutionImmutable,
    ExecutionInProgress,
    ExecutionNotFound,
    InvalidTransition,
    NoSectionsConfigured,
    ReorderConflict,
    SectionNotFound,
    SectionReadOnly,
    TransportFailure,
    UnknownOutcome,
)
from docflow.events import NullPublisher, ServiceBusPublisher
from docflow.health import check_generation_service
from docflow.logging import configure_logging
from docflow.routes.documents import router as documents_router
from docflow.routes.executions import router as executions_router
from docflow.routes.sections import router as sections_router
from docflow.routes.status import router as status_router
from docflow.services.generation import HttpGenerationClient

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

_SERVER_ERROR = 500

_STATUS_CODES: dict[type[CoordinatorError], int] = {
    ExecutionInProgress: 409,
    ExecutionImmutable: 409,
    InvalidTransition: 409,
    DuplicateExecution: 409,
    ReorderConflict: 409,
    ExecutionNotFound: 404,
    SectionNotFound: 404,
    NoSectionsConfigured: 422,
    SectionReadOnly: 422,
    TransportFailure: 502,
    UnknownOutcome: 504,
}


def status_code_for(exc: CoordinatorError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in _STATUS_CODES:
            return _STATUS_CODES[error_type]
    return _SERVER_ERROR


async def coordinator_error_handler(request: Request, exc: CoordinatorError) -> JSONResponse:
    code = status_code_for(exc)
    log = logger.warning if code >= _SERVER_ERROR else logger.info
    log(
        "Request failed — %s %s error=%s detail=%s",
        request.method,
        request.url.path,
        exc.kind,
        exc.message,
    )
    return JSONResponse(status_code=code, content=exc.to_dict())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the coordinator on startup and tear it down on shutdown."""
    settings = load_settings()
    configure_logging(settings.app.log_level)

    logger.info("Coordinator starting — env=%s", settings.app.env)
    if settings.app.is_development and not await check_generation_service(settings):
        logger.warning("Generation service unavailable — requests will fail until it is up")

    service = HttpGenerationClient(settings.generation)
    publisher = (
        ServiceBusPublisher(settings.servicebus)
        if settings.servicebus.connection_string
        else NullPublisher()
    )
    coordinator = ExecutionCoordinator(
        service, polling=settings.polling, publisher=publisher
    )

    app.state.settings = settings
    app.state.coordinator = coordinator
    app.state.publisher = publisher
    app.state.start_time = time.monotonic()
    logger.info("Coordinator running")

    yield

    logger.info("Coordinator shutting down")
    await coordinator.close()
    if isinstance(publisher, ServiceBusPublisher):
        await publisher.close()
    await service.close()
    logger.info("Coordinator shutdown complete")


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(title="docflow", lifespan=lifespan)
    app.add_exception_handler(CoordinatorError, coordinator_error_handler)
    app.include_router(documents_router)
    app.include_router(executions_router)
    app.include_router(sections_router)
    app.include_router(status_router)
    return app
