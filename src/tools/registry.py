"""
Tool registry: the catalog of tool definitions keyed by tool id.

The registry is read-mostly after startup. One instance is built in the
application lifespan and injected where needed; tests build their own.
"""

from __future__ import annotations

from collections.abc import Iterable

from models.tool_models import ToolCategory, ToolDescriptor
from tools import browser, calculator, search, weather
from tools.base import ToolDefinition
from utils.logger import logger


def default_definitions() -> list[ToolDefinition]:
    """Built-in tools, in display order."""
    return [
        calculator.DEFINITION,
        weather.DEFINITION,
        search.DEFINITION,
        browser.DEFINITION,
    ]


class ToolRegistry:
    """Catalog of tool definitions keyed by id."""

    def __init__(self, defaults: Iterable[ToolDefinition] | None = None):
        self._defaults = tuple(default_definitions() if defaults is None else defaults)
        self._definitions: dict[str, ToolDefinition] = {}
        self.reset()

    def register(self, definition: ToolDefinition) -> None:
        """Add a definition. An existing definition with the same id is replaced."""
        tool_id = definition.descriptor.id
        if tool_id in self._definitions:
            logger.warning(f"Tool {tool_id} is already registered, replacing it")
        self._definitions[tool_id] = definition
        logger.debug(f"Registered tool {tool_id}")

    def unregister(self, tool_id: str) -> bool:
        removed = self._definitions.pop(tool_id, None) is not None
        if removed:
            logger.debug(f"Unregistered tool {tool_id}")
        return removed

    def get(self, tool_id: str) -> ToolDefinition | None:
        return self._definitions.get(tool_id)

    def has(self, tool_id: str) -> bool:
        return tool_id in self._definitions

    def all(self) -> list[ToolDefinition]:
        return list(self._definitions.values())

    def metadata(self) -> list[ToolDescriptor]:
        return [d.descriptor for d in self._definitions.values()]

    def by_category(self, category: ToolCategory | str) -> list[ToolDefinition]:
        category = ToolCategory(category)
        return [d for d in self._definitions.values() if d.descriptor.category == category]

    def by_tag(self, tag: str) -> list[ToolDefinition]:
        return [d for d in self._definitions.values() if tag in d.descriptor.tags]

    def clear(self) -> None:
        self._definitions.clear()

    def reset(self) -> None:
        """Drop dynamic registrations and restore the defaults."""
        self._definitions = {d.descriptor.id: d for d in self._defaults}

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._definitions


__all__ = ["ToolRegistry", "default_definitions"]
