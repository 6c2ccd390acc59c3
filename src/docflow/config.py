"""Environment-driven configuration for the coordinator and its HTTP surface."""

from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env(key: str, default: str = "") -> str:
    """Read an environment variable, falling back to ``default``."""
    return os.environ.get(key, default)


@dataclass(frozen=True)
class AppConfig:
    env: str = field(default_factory=lambda: _env("APP_ENV", "development"))
    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))

    @property
    def is_development(self) -> bool:
        return self.env == "development"


@dataclass(frozen=True)
class GenerationServiceConfig:
    """Connection settings for the external content generation service."""

    base_url: str = field(
        default_factory=lambda: _env("GENERATION_SERVICE_URL", "http://localhost:8001")
    )
    api_key: str = field(default_factory=lambda: _env("GENERATION_SERVICE_API_KEY"))
    timeout_seconds: float = field(
        default_factory=lambda: float(_env("GENERATION_SERVICE_TIMEOUT", "10"))
    )


@dataclass(frozen=True)
class PollingConfig:
    """Poll intervals (milliseconds) and the transport retry budget for watches."""

    section_interval_ms: int = field(
        default_factory=lambda: int(_env("POLL_SECTION_INTERVAL_MS", "2000"))
    )
    approval_interval_ms: int = field(
        default_factory=lambda: int(_env("POLL_APPROVAL_INTERVAL_MS", "1000"))
    )
    execution_interval_ms: int = field(
        default_factory=lambda: int(_env("POLL_EXECUTION_INTERVAL_MS", "3000"))
    )
    retry_budget: int = field(
        default_factory=lambda: int(_env("POLL_RETRY_BUDGET", "3"))
    )

    @property
    def section_interval(self) -> float:
        return self.section_interval_ms / 1000

    @property
    def approval_interval(self) -> float:
        return self.approval_interval_ms / 1000

    @property
    def execution_interval(self) -> float:
        return self.execution_interval_ms / 1000


@dataclass(frozen=True)
class ServiceBusConfig:
    connection_string: str = field(
        default_factory=lambda: _env("AZURE_SERVICEBUS_CONNECTION_STRING")
    )
    topic_name: str = field(
        default_factory=lambda: _env("AZURE_SERVICEBUS_TOPIC", "execution-events")
    )


@dataclass(frozen=True)
class Settings:
    app: AppConfig = field(default_factory=AppConfig)
    generation: GenerationServiceConfig = field(default_factory=GenerationServiceConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    servicebus: ServiceBusConfig = field(default_factory=ServiceBusConfig)


def load_settings() -> Settings:
    """Build settings from the current process environment."""
    return Settings()
