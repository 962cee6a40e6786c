from __future__ import annotations

from typing import Annotated

import asyncpg

from fastapi import Depends, Request

from core.checkpoint import CheckpointStore
from core.constants import Settings, get_settings
from core.executor import TurnExecutor
from core.threads import ThreadLifecycleManager
from integrations.mcp_tools import MCPToolSource
from tools.loader import ToolLoader
from tools.registry import ToolRegistry


async def get_db(request: Request) -> asyncpg.Pool | None:
    """Database pool from application state (None with the in-memory backend)."""
    return getattr(request.app.state, "db_pool", None)


def get_app_settings() -> Settings:
    return get_settings()


def get_executor(request: Request) -> TurnExecutor:
    return request.app.state.executor


def get_thread_manager(request: Request) -> ThreadLifecycleManager:
    return request.app.state.thread_manager


def get_checkpoint_store(request: Request) -> CheckpointStore:
    return request.app.state.checkpoint_store


def get_tool_registry(request: Request) -> ToolRegistry:
    return request.app.state.tool_registry


def get_tool_loader(request: Request) -> ToolLoader:
    return request.app.state.tool_loader


def get_mcp_source(request: Request) -> MCPToolSource | None:
    return getattr(request.app.state, "mcp_source", None)


# Type aliases for cleaner route signatures
DB = Annotated[asyncpg.Pool | None, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Executor = Annotated[TurnExecutor, Depends(get_executor)]
Threads = Annotated[ThreadLifecycleManager, Depends(get_thread_manager)]
Checkpoints = Annotated[CheckpointStore, Depends(get_checkpoint_store)]
Registry = Annotated[ToolRegistry, Depends(get_tool_registry)]
Loader = Annotated[ToolLoader, Depends(get_tool_loader)]
MCPSource = Annotated[MCPToolSource | None, Depends(get_mcp_source)]
