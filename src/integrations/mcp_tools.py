"""
MCP tool source.

Discovers tools exposed by MCP servers over streamable HTTP and wraps them
as executable ``Tool`` instances (id ``mcp:<name>``). Tool listings are
cached per server for ``cache_ttl`` seconds; calls open a short-lived
session each, so a flaky server only affects the call that hit it.

Any connection or protocol failure is raised as ``MCPError``; the turn
executor catches it and continues without MCP tools.
"""

from __future__ import annotations

import asyncio
import time

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client

from core.constants import MCP_TOOL_PREFIX
from core.exceptions import MCPError
from models.tool_models import MCPServerConfig, ToolCategory, ToolDescriptor
from tools.base import Tool, ToolExecutor
from utils.logger import logger

DEFAULT_CACHE_TTL_SECONDS = 300.0


def _result_text(result: Any) -> str:
    """Flatten a CallToolResult's content blocks into text."""
    parts: list[str] = []
    for block in result.content or []:
        text = getattr(block, "text", None)
        if text is not None:
            parts.append(text)
        else:
            parts.append(f"[{getattr(block, 'type', 'content')} omitted]")
    return "\n".join(parts)


def _descriptor(tool: Any) -> ToolDescriptor:
    schema = tool.inputSchema if isinstance(getattr(tool, "inputSchema", None), dict) else None
    return ToolDescriptor(
        id=f"{MCP_TOOL_PREFIX}{tool.name}",
        name=tool.name,
        display_name=getattr(tool, "title", None) or tool.name,
        description=tool.description or f"MCP tool {tool.name}",
        category=ToolCategory.MCP,
        tags=("mcp",),
        requires_approval=True,
        input_schema=schema or {"type": "object", "properties": {}},
    )


class MCPToolSource:
    """Lists and calls MCP server tools."""

    def __init__(self, timeout: float = 15.0, cache_ttl: float = DEFAULT_CACHE_TTL_SECONDS):
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self._cache: dict[tuple[str, tuple[tuple[str, str], ...]], tuple[float, list[ToolDescriptor]]] = {}

    @asynccontextmanager
    async def _session(self, server: MCPServerConfig) -> AsyncIterator[ClientSession]:
        async with streamablehttp_client(server.url, headers=server.headers or None, timeout=self.timeout) as (
            read_stream,
            write_stream,
            _,
        ):
            async with ClientSession(read_stream, write_stream) as session:
                await session.initialize()
                yield session

    async def list_descriptors(self, server: MCPServerConfig) -> list[ToolDescriptor]:
        """Tool descriptors advertised by ``server`` (cached).

        Raises:
            MCPError: If the server cannot be reached or listed.
        """
        key = server.cache_key()
        cached = self._cache.get(key)
        if cached is not None and cached[0] > time.monotonic():
            return cached[1]

        try:
            async with self._session(server) as session:
                listing = await asyncio.wait_for(session.list_tools(), timeout=self.timeout)
        except Exception as e:
            raise MCPError(f"Failed to list tools from MCP server: {e}", mcp_url=server.url, cause=e) from e

        descriptors = [_descriptor(tool) for tool in listing.tools]
        self._cache[key] = (time.monotonic() + self.cache_ttl, descriptors)
        logger.info(f"Loaded {len(descriptors)} MCP tools from {server.url}")
        return descriptors

    async def call_tool(self, server: MCPServerConfig, name: str, args: dict[str, Any]) -> str:
        """Run one tool on ``server`` and return its text output.

        Raises:
            MCPError: On connection failure, timeout or a tool-reported error.
        """
        try:
            async with self._session(server) as session:
                result = await asyncio.wait_for(session.call_tool(name, args), timeout=self.timeout)
        except Exception as e:
            raise MCPError(f"MCP tool call failed: {e}", mcp_url=server.url, tool_name=name, cause=e) from e

        text = _result_text(result)
        if result.isError:
            raise MCPError(text or "MCP tool reported an error", mcp_url=server.url, tool_name=name)
        return text

    def _executor(self, server: MCPServerConfig, name: str) -> ToolExecutor:
        async def execute(args: dict[str, Any]) -> str:
            return await self.call_tool(server, name, args)

        return execute

    async def load_tools(self, servers: list[MCPServerConfig]) -> list[Tool]:
        """Executable tools from every server, first server wins on a name clash.

        Raises:
            MCPError: If any server fails; callers treat that as degraded mode.
        """
        tools: dict[str, Tool] = {}
        for server in servers:
            for descriptor in await self.list_descriptors(server):
                if descriptor.name in tools:
                    logger.warning(f"Duplicate MCP tool {descriptor.name} from {server.url} ignored")
                    continue
                tools[descriptor.name] = Tool(descriptor=descriptor, execute=self._executor(server, descriptor.name))
        return list(tools.values())

    def clear_cache(self) -> None:
        self._cache.clear()


__all__ = ["MCPToolSource"]
