"""Tests for configuration module."""

from docflow.config import (
    AppConfig,
    GenerationServiceConfig,
    PollingConfig,
    ServiceBusConfig,
    Settings,
    _env,
    load_settings,
)


def test_env_returns_value(monkeypatch):
    monkeypatch.setenv("TEST_KEY", "hello")
    assert _env("TEST_KEY") == "hello"


def test_env_returns_default_when_missing(monkeypatch):
    monkeypatch.delenv("TEST_KEY", raising=False)
    assert _env("TEST_KEY", "fallback") == "fallback"


def test_app_config_is_development_true():
    config = AppConfig.__new__(AppConfig)
    object.__setattr__(config, "env", "development")
    assert config.is_development is True


def test_app_config_is_development_false():
    config = AppConfig.__new__(AppConfig)
    object.__setattr__(config, "env", "production")
    assert config.is_development is False


def test_generation_service_config(monkeypatch):
    monkeypatch.setenv("GENERATION_SERVICE_URL", "https://gen.example.com")
    monkeypatch.setenv("GENERATION_SERVICE_API_KEY", "secret")
    monkeypatch.setenv("GENERATION_SERVICE_TIMEOUT", "2.5")
    config = GenerationServiceConfig()
    assert config.base_url == "https://gen.example.com"
    assert config.api_key == "secret"
    assert config.timeout_seconds == 2.5


def test_polling_config_defaults(monkeypatch):
    for key in [
        "POLL_SECTION_INTERVAL_MS",
        "POLL_APPROVAL_INTERVAL_MS",
        "POLL_EXECUTION_INTERVAL_MS",
        "POLL_RETRY_BUDGET",
    ]:
        monkeypatch.delenv(key, raising=False)
    config = PollingConfig()
    assert config.section_interval == 2.0
    assert config.approval_interval == 1.0
    assert config.execution_interval == 3.0
    assert config.retry_budget == 3


def test_polling_config_from_env(monkeypatch):
    monkeypatch.setenv("POLL_SECTION_INTERVAL_MS", "500")
    monkeypatch.setenv("POLL_RETRY_BUDGET", "5")
    config = PollingConfig()
    assert config.section_interval == 0.5
    assert config.retry_budget == 5


def test_servicebus_config_default_topic(monkeypatch):
    monkeypatch.delenv("AZURE_SERVICEBUS_TOPIC", raising=False)
    monkeypatch.delenv("AZURE_SERVICEBUS_CONNECTION_STRING", raising=False)
    config = ServiceBusConfig()
    assert config.topic_name == "execution-events"
    assert config.connection_string == ""


def test_load_settings_creates_all_sub_configs():
    settings = load_settings()
    assert isinstance(settings, Settings)
    assert isinstance(settings.app, AppConfig)
    assert isinstance(settings.generation, GenerationServiceConfig)
    assert isinstance(settings.polling, PollingConfig)
    assert isinstance(settings.servicebus, ServiceBusConfig)
