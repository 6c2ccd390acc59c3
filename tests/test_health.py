"""Tests for the generation service health check."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from docflow.config import GenerationServiceConfig, Settings
from docflow.health import check_generation_service


def _settings(base_url: str = "http://generation.test") -> Settings:
    return Settings(generation=GenerationServiceConfig(base_url=base_url))


def _async_client(*, response=None, error=None) -> MagicMock:
    client = MagicMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    client.get = AsyncMock(return_value=response, side_effect=error)
    return client


class TestCheckGenerationService:
    """Test the Generation Service health check."""

    async def test_missing_url(self) -> None:
        """Verify an unset URL fails without a request."""
        with patch("docflow.health.httpx.AsyncClient") as client_cls:
            assert await check_generation_service(_settings("")) is False

        client_cls.assert_not_called()

    async def test_healthy(self) -> None:
        """Verify a successful response reports healthy."""
        client = _async_client(response=MagicMock(is_server_error=False))

        with patch("docflow.health.httpx.AsyncClient", return_value=client):
            assert await check_generation_service(_settings()) is True

        client.get.assert_awaited_once_with("http://generation.test/health")

    async def test_server_error(self) -> None:
        """Verify a 5xx response reports unhealthy."""
        client = _async_client(response=MagicMock(is_server_error=True, status_code=503))

        with patch("docflow.health.httpx.AsyncClient", return_value=client):
            assert await check_generation_service(_settings()) is False

    async def test_unreachable(self) -> None:
        """Verify a connection error reports unhealthy."""
        client = _async_client(error=httpx.ConnectError("refused"))

        with patch("docflow.health.httpx.AsyncClient", return_value=client):
            assert await check_generation_service(_settings()) is False
