"""Pytest configuration and fixtures for image store tests.

Test isolation strategy:
- Storage settings are stripped from the environment for every test
- The settings cache is cleared before and after each test
- Store fields bound to log events are cleared after each test
- API tests run against a FakeStorageClient injected into create_app()
"""

from collections.abc import Generator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from imagestore.app import add_request_id_middleware, create_app
from imagestore.config import clear_settings_cache
from imagestore.logging import clear_store_context
from imagestore.storage import FakeStorageClient

_STORAGE_ENV_VARS = (
    "GCS_BUCKET",
    "GCS_ACCESS_TOKEN",
    "GCS_API_URL",
    "GCS_PUBLIC_BASE_URL",
    "IMAGES_BASE_DIR",
    "MAX_IMAGE_BYTES",
    "UNIQUE_NAME_MAX_ATTEMPTS",
    "STORAGE_TIMEOUT_S",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Run every test against a clean, test-environment configuration."""
    for name in _STORAGE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("IMAGESTORE_ENV", "test")
    monkeypatch.setenv("LOG_JSON", "false")
    clear_settings_cache()
    yield
    clear_settings_cache()
    clear_store_context()


@pytest.fixture
def store() -> FakeStorageClient:
    """Provide a fresh in-memory store."""
    return FakeStorageClient()


@pytest.fixture
def app(store: FakeStorageClient) -> FastAPI:
    """Create an app wired to the fake store, with request-id middleware."""
    app = create_app(store=store)
    add_request_id_middleware(app, log_requests=False)
    return app


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Provide a test client that runs the app lifespan."""
    with TestClient(app) as client:
        yield client
