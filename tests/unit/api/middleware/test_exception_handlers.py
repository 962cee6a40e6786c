from __future__ import annotations

import pytest

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from api.middleware.exception_handlers import register_exception_handlers
from core.exceptions import RateLimitError, ThreadBusyError, ThreadNotFoundError
from models.error_models import ErrorCode


@pytest.fixture
def error_client() -> TestClient:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/missing")
    async def missing() -> None:
        raise ThreadNotFoundError("thread_1")

    @app.get("/busy")
    async def busy() -> None:
        raise ThreadBusyError("thread_1")

    @app.get("/limited")
    async def limited() -> None:
        raise RateLimitError(retry_after=7)

    @app.get("/http")
    async def http() -> None:
        raise HTTPException(status_code=409, detail="conflict")

    @app.get("/boom")
    async def boom() -> None:
        raise RuntimeError("secret internals")

    return TestClient(app, raise_server_exceptions=False)


def test_not_found_envelope(error_client: TestClient) -> None:
    response = error_client.get("/missing")

    assert response.status_code == 404
    error = response.json()["error"]
    assert error["code"] == ErrorCode.THREAD_NOT_FOUND.value
    assert "thread_1" in error["message"]
    assert "debug" not in error


def test_thread_busy_is_locked(error_client: TestClient) -> None:
    response = error_client.get("/busy")

    assert response.status_code == 423
    assert response.json()["error"]["code"] == ErrorCode.RESOURCE_LOCKED.value


def test_rate_limit_sets_retry_after(error_client: TestClient) -> None:
    response = error_client.get("/limited")

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "7"


def test_http_exception_is_wrapped(error_client: TestClient) -> None:
    response = error_client.get("/http")

    assert response.status_code == 409
    assert response.json()["error"]["code"] == ErrorCode.RESOURCE_CONFLICT.value


def test_unexpected_exception_is_sanitized(error_client: TestClient) -> None:
    response = error_client.get("/boom")

    assert response.status_code == 500
    error = response.json()["error"]
    assert error["code"] == ErrorCode.INTERNAL_UNEXPECTED.value
    assert error["message"] == "An unexpected error occurred"
    assert "secret internals" not in response.text
