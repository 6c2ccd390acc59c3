"""Status route — dependency health and coordinator statistics."""

from __future__ import annotations

import time
from typing import Any

from fastapi import APIRouter, Request

from docflow.health import check_generation_service

router = APIRouter(tags=["status"])


@router.get("/status")
async def status(request: Request) -> dict[str, Any]:
    """Report generation service reachability and live watch counts."""
    settings = request.app.state.settings
    coordinator = request.app.state.coordinator
    start_time = request.app.state.start_time
    healthy = await check_generation_service(settings)
    return {
        "environment": settings.app.env,
        "generation_service": "healthy" if healthy else "unreachable",
        "live_watches": coordinator.poller.live_count,
        "uptime_seconds": round(time.monotonic() - start_time, 1),
    }
