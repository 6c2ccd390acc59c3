"""Pre-flight health check for the generation service dependency."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import httpx

if TYPE_CHECKING:
    from docflow.config import Settings

logger = logging.getLogger(__name__)


async def check_generation_service(settings: Settings) -> bool:
    """Verify the generation service answers. Return False when it does not."""
    base_url = settings.generation.base_url
    if not base_url:
        logger.error("GENERATION_SERVICE_URL is not set — add it to the environment")
        return False

    parsed = urlparse(base_url)
    async with httpx.AsyncClient(timeout=3) as client:
        try:
            response = await client.get(f"{base_url.rstrip('/')}/health")
        except httpx.TransportError:
            logger.error("Generation service is not reachable at %s", parsed.netloc)
            return False

    if response.is_server_error:
        logger.error(
            "Generation service at %s is unhealthy (HTTP %d)",
            parsed.netloc,
            response.status_code,
        )
        return False
    return True
