"""
Tool catalog models: descriptors, load options and load results.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ToolCategory(str, Enum):
    """Grouping used for filtering and for the tool picker."""

    SEARCH = "search"
    UTILITY = "utility"
    BROWSER = "browser"
    DATA = "data"
    CUSTOM = "custom"
    MCP = "mcp"


class ToolDescriptor(BaseModel):
    """Immutable metadata of a registered tool."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Registry key, e.g. 'internal:calculator'")
    name: str = Field(..., min_length=1, description="Name exposed to the model")
    display_name: str
    description: str
    category: ToolCategory
    version: str = "1.0.0"
    enabled: bool = True
    tags: tuple[str, ...] = ()
    requires_approval: bool = Field(
        default=True, description="Whether a call must be approved by a human before it runs"
    )
    input_schema: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})


class ToolLoadOptions(BaseModel):
    """Filters applied when materializing tools from the registry."""

    categories: list[ToolCategory] | None = None
    enabled_only: bool = True
    include_ids: list[str] | None = None
    exclude_ids: list[str] | None = None
    config: dict[str, Any] = Field(default_factory=dict)


class MCPServerConfig(BaseModel):
    """Connection settings for one MCP server (streamable HTTP)."""

    url: str = Field(..., min_length=1)
    headers: dict[str, str] = Field(default_factory=dict)

    def cache_key(self) -> tuple[str, tuple[tuple[str, str], ...]]:
        return self.url, tuple(sorted(self.headers.items()))


class ToolLoadError(BaseModel):
    """A tool that failed to build, with the reason."""

    id: str
    error: str


__all__ = [
    "MCPServerConfig",
    "ToolCategory",
    "ToolDescriptor",
    "ToolLoadError",
    "ToolLoadOptions",
]
