"""
Tool loader: materializes executable tools from the registry.

Filtering is by category, id and enabled state. A tool whose configuration
does not validate is skipped with a warning; a tool whose factory raises is
reported in ``ToolLoadResult.errors``. Neither stops the others from loading.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from models.tool_models import ToolCategory, ToolDescriptor, ToolLoadError, ToolLoadOptions
from tools.base import Tool, ToolDefinition
from tools.registry import ToolRegistry
from utils.logger import logger


@dataclass
class ToolLoadResult:
    tools: list[Tool] = field(default_factory=list)
    metadata: list[ToolDescriptor] = field(default_factory=list)
    errors: list[ToolLoadError] = field(default_factory=list)

    def by_name(self) -> dict[str, Tool]:
        return {tool.name: tool for tool in self.tools}


class ToolLoader:
    """Builds tools from a registry.

    ``base_config`` (API keys, timeouts) is merged under each call's
    ``options.config``.
    """

    def __init__(self, registry: ToolRegistry, base_config: dict[str, Any] | None = None):
        self.registry = registry
        self.base_config = dict(base_config or {})

    def _select(self, options: ToolLoadOptions) -> list[ToolDefinition]:
        categories = set(options.categories) if options.categories else None
        include = set(options.include_ids) if options.include_ids is not None else None
        exclude = set(options.exclude_ids or ())

        selected = []
        for definition in self.registry.all():
            descriptor = definition.descriptor
            if options.enabled_only and not descriptor.enabled:
                continue
            if categories is not None and descriptor.category not in categories:
                continue
            if include is not None and descriptor.id not in include:
                continue
            if descriptor.id in exclude:
                continue
            selected.append(definition)
        return selected

    def load(self, options: ToolLoadOptions | None = None) -> ToolLoadResult:
        options = options or ToolLoadOptions()
        config = {**self.base_config, **options.config}
        result = ToolLoadResult()

        for definition in self._select(options):
            tool_id = definition.descriptor.id
            if definition.validate_config is not None:
                problem = definition.validate_config(config)
                if problem:
                    logger.warning(f"Skipping tool {tool_id}: {problem}")
                    continue
            try:
                tool = definition.build(config)
            except Exception as e:
                logger.error(f"Failed to build tool {tool_id}: {e}", exc_info=True)
                result.errors.append(ToolLoadError(id=tool_id, error=str(e)))
                continue
            result.tools.append(tool)
            result.metadata.append(definition.descriptor)

        logger.debug(f"Loaded {len(result.tools)} tools ({len(result.errors)} errors)")
        return result

    def load_by_category(
        self, categories: Iterable[ToolCategory | str], config: dict[str, Any] | None = None
    ) -> ToolLoadResult:
        return self.load(
            ToolLoadOptions(categories=[ToolCategory(c) for c in categories], config=config or {})
        )

    def load_by_ids(self, tool_ids: Iterable[str], config: dict[str, Any] | None = None) -> ToolLoadResult:
        return self.load(ToolLoadOptions(include_ids=list(tool_ids), config=config or {}))

    def load_all(self, config: dict[str, Any] | None = None) -> ToolLoadResult:
        return self.load(ToolLoadOptions(enabled_only=False, config=config or {}))


__all__ = ["ToolLoadResult", "ToolLoader"]
