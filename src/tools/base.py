"""
Tool building blocks.

A ToolDefinition is what the registry stores: the descriptor plus a factory
that turns runtime configuration into an executor. A Tool is the built,
executable instance handed to the turn executor.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from models.tool_models import ToolDescriptor

#: Executes one call. Returns the tool result text or raises.
ToolExecutor = Callable[[dict[str, Any]], Awaitable[str]]

#: Builds an executor from runtime configuration.
ToolFactory = Callable[[dict[str, Any]], ToolExecutor]

#: Returns an error message when configuration is unusable, None when it is fine.
ConfigValidator = Callable[[dict[str, Any]], str | None]


@dataclass(frozen=True, slots=True)
class Tool:
    """Executable tool instance."""

    descriptor: ToolDescriptor
    execute: ToolExecutor

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def requires_approval(self) -> bool:
        return self.descriptor.requires_approval

    def to_openai_schema(self) -> dict[str, Any]:
        """Chat Completions function-calling schema."""
        return {
            "type": "function",
            "function": {
                "name": self.descriptor.name,
                "description": self.descriptor.description,
                "parameters": self.descriptor.input_schema,
            },
        }


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """Registry entry: descriptor, factory and optional config validation."""

    descriptor: ToolDescriptor
    factory: ToolFactory
    validate_config: ConfigValidator | None = None

    def build(self, config: dict[str, Any]) -> Tool:
        return Tool(descriptor=self.descriptor, execute=self.factory(config))


def require_string(args: dict[str, Any], key: str) -> str:
    """Fetch a required non-empty string argument."""
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{key}' must be a non-empty string")
    return value.strip()


__all__ = [
    "ConfigValidator",
    "Tool",
    "ToolDefinition",
    "ToolExecutor",
    "ToolFactory",
    "require_string",
]
