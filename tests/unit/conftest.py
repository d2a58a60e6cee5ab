"""Shared fixtures for unit tests."""

import os
from collections.abc import Generator
from typing import Any

import pytest
from pytest_mock import MockerFixture, MockType

from src.core.config import LogConfig, Settings, get_settings
from src.core.context import RequestContext
from src.core.error_context import _get_sensitive_fields
from src.infrastructure.database.connection import reset_connection_manager


@pytest.fixture
def mock_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Provide a real Settings object built from test environment variables.

    Returns:
        Settings: Settings with test defaults.
    """
    monkeypatch.setenv("APP_NAME", "TestApp")
    monkeypatch.setenv("APP_VERSION", "1.0.0")
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("API_HOST", "127.0.0.1")
    monkeypatch.setenv("API_PORT", "3000")
    monkeypatch.setenv("MONGO_CONFIG__URI", "mongodb://localhost:27017/centivo_unit")

    return Settings()


@pytest.fixture
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Isolate environment variables for testing.

    Returns:
        pytest.MonkeyPatch: The monkeypatch instance for env manipulation.
    """
    monkeypatch.delenv("PORT", raising=False)
    return monkeypatch


@pytest.fixture(autouse=True)
def clean_lru_cache() -> Generator[None]:
    """Clear the settings caches before and after each test."""
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
    yield
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()


@pytest.fixture(autouse=True)
def clean_env(
    monkeypatch: pytest.MonkeyPatch,
) -> Generator[pytest.MonkeyPatch]:
    """Backup and restore environment variables to prevent test interference.

    Cloud detection variables are cleared too so formatter auto-detection
    starts from a local development baseline.

    Returns:
        pytest.MonkeyPatch: The monkeypatch instance for env manipulation.
    """
    original_env = os.environ.copy()

    env_prefixes = [
        "APP_",
        "API_",
        "ENVIRONMENT",
        "DEBUG",
        "LOG_CONFIG__",
        "OBSERVABILITY_CONFIG__",
        "MONGO_CONFIG__",
        "CORS_ORIGINS",
        "K_SERVICE",
    ]
    for key in list(os.environ.keys()):
        if any(key.startswith(prefix) for prefix in env_prefixes):
            monkeypatch.delenv(key, raising=False)

    yield monkeypatch

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture(autouse=True)
def clean_context() -> Generator[None]:
    """Clear request context before and after each test."""
    RequestContext.clear()
    yield
    RequestContext.clear()


@pytest.fixture(autouse=True)
def clean_connection_manager() -> Generator[None]:
    """Forget the process-wide connection manager around each test."""
    reset_connection_manager()
    yield
    reset_connection_manager()


@pytest.fixture
def mock_get_settings(mocker: MockerFixture) -> MockType:
    """Mock get_settings for error_context with custom sensitive fields.

    Returns:
        MockType: Mock get_settings function.
    """
    mock_settings = mocker.Mock(spec=Settings)
    mock_log_config = mocker.Mock(spec=LogConfig)
    mock_log_config.sensitive_fields = ["custom_secret", "my_password", "api_token"]
    mock_settings.log_config = mock_log_config

    mock_get_settings_fn = mocker.patch("src.core.error_context.get_settings")
    mock_get_settings_fn.return_value = mock_settings

    _get_sensitive_fields.cache_clear()

    return mock_get_settings_fn


@pytest.fixture
def sample_sensitive_data() -> dict[str, Any]:
    """Provide nested data with sensitive fields at various depths."""
    return {
        "name": "John Doe",
        "password": "secret123",
        "profile": {
            "email": "john@example.com",
            "api_key": "sk-1234567890",
            "preferences": {"theme": "dark", "private_key": "rsa-key"},
        },
        "items": [
            {"id": 1, "token": "item_token_1"},
            {"id": 2, "label": "public"},
        ],
        "tuple_data": ("public", {"secret": "hidden"}),
    }
