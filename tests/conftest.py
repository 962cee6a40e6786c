"""Shared test fixtures for the Agent Stream test suite.

Provides a settings patch applied before collection, a scripted chat model
that replays canned AI messages, and an executor wired to in-memory stores.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Generator
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import patch

import pytest

# ============================================================================
# EARLY INITIALIZATION: Runs before test collection
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Patch get_settings before any test module imports application code.

    Module-level ``settings = get_settings()`` in api.main would otherwise
    read the developer's .env files and default to the PostgreSQL backend.
    """
    from core.constants import Settings

    test_settings = Settings(
        app_env="test",
        checkpoint_backend="memory",
        openai_api_key=None,
        serpapi_api_key=None,
        debug=False,
        stream_timeout_seconds=5.0,
        stream_cancel_grace_seconds=1.0,
        turn_lock_timeout_seconds=1.0,
    )

    cfg: Any = config
    cfg._test_settings = test_settings

    patcher = patch("core.constants.get_settings", return_value=test_settings)
    patcher.start()
    cfg._settings_patcher = patcher


def pytest_unconfigure(config: pytest.Config) -> None:
    """Clean up settings patch after all tests complete."""
    patcher = getattr(config, "_settings_patcher", None)
    if patcher is not None:
        patcher.stop()


@pytest.fixture
def test_settings(request: pytest.FixtureRequest) -> Any:
    return request.config._test_settings  # type: ignore[attr-defined]


# ============================================================================
# Chat model doubles
# ============================================================================


class ScriptedModel:
    """ChatModel that returns queued AI messages in order.

    Each queued entry is either a Message or an exception instance to raise.
    ``calls`` records the history length seen by every invocation. With
    ``streaming`` set, ``stream`` yields each message's text word by word
    before the message itself.
    """

    provider = "test"
    model = "scripted"

    def __init__(self, responses: list[Any] | None = None, streaming: bool = False):
        self.responses = list(responses or [])
        self.streaming = streaming
        self.calls: list[list[Any]] = []
        self.tool_names: list[list[str]] = []

    async def invoke(self, system_prompt: str, messages: list[Any], tools: list[Any]) -> Any:
        self.calls.append(list(messages))
        self.tool_names.append([tool.name for tool in tools])
        if not self.responses:
            raise AssertionError("ScriptedModel ran out of responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def stream(self, system_prompt: str, messages: list[Any], tools: list[Any]) -> AsyncIterator[Any]:
        from core.model import MessageDelta

        message = await self.invoke(system_prompt, messages, tools)
        words = message.text.split(" ") if message.text else []
        for index, word in enumerate(words):
            yield MessageDelta(message.id, word if index == 0 else f" {word}")
        yield message


@pytest.fixture
def scripted_model() -> ScriptedModel:
    return ScriptedModel()


@pytest.fixture
def checkpoint_store() -> Any:
    from core.checkpoint import InMemoryCheckpointStore

    return InMemoryCheckpointStore()


@pytest.fixture
def tool_registry() -> Any:
    from tools.registry import ToolRegistry

    return ToolRegistry()


@pytest.fixture
def tool_loader(tool_registry: Any) -> Any:
    from tools.loader import ToolLoader

    return ToolLoader(tool_registry, base_config={"tool_http_timeout": 1.0})


@pytest.fixture
def executor(checkpoint_store: Any, tool_loader: Any, scripted_model: ScriptedModel) -> Any:
    from core.executor import TurnExecutor

    return TurnExecutor(
        checkpoint_store,
        lambda options: scripted_model,
        tool_loader,
        max_agent_steps=5,
        lock_timeout=0.5,
    )


async def collect(events: AsyncIterator[Any]) -> list[Any]:
    """Drain an event iterator into a list."""
    return [event async for event in events]


@pytest.fixture
def collect_events() -> Any:
    return collect


# ============================================================================
# Application fixtures
# ============================================================================


@pytest.fixture
def app(scripted_model: ScriptedModel) -> Any:
    """Full application on the in-memory backend, model replaced by ``scripted_model``."""
    from api.main import build_state, create_app
    from core.checkpoint import InMemoryCheckpointStore
    from core.constants import get_settings
    from core.threads import InMemoryThreadStore

    @asynccontextmanager
    async def lifespan(app: Any) -> AsyncIterator[None]:
        app.state.db_pool = None
        build_state(app, get_settings(), InMemoryCheckpointStore(), InMemoryThreadStore())
        app.state.executor.model_factory = lambda options: scripted_model
        yield

    return create_app(lifespan)


@pytest.fixture
def client(app: Any) -> Generator[Any, None, None]:
    from fastapi.testclient import TestClient

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


def sse_frames(body: str) -> list[str]:
    """Split an event-stream body into frames (without the trailing blank line)."""
    return [frame for frame in body.split("\n\n") if frame]


def sse_events(body: str) -> list[dict[str, Any]]:
    """Decoded ``data:`` payloads of every plain event frame."""
    import json

    return [json.loads(frame[len("data: ") :]) for frame in sse_frames(body) if frame.startswith("data: ")]
