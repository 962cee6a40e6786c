from __future__ import annotations

from typing import Any

import pytest

from models.tool_models import ToolCategory, ToolDescriptor, ToolLoadOptions
from tools.base import ToolDefinition, ToolExecutor
from tools.loader import ToolLoader
from tools.registry import ToolRegistry


def definition(tool_id: str, category: ToolCategory = ToolCategory.CUSTOM, enabled: bool = True) -> ToolDefinition:
    def factory(config: dict[str, Any]) -> ToolExecutor:
        async def execute(args: dict[str, Any]) -> str:
            return "ok"

        return execute

    name = tool_id.split(":")[-1]
    return ToolDefinition(
        descriptor=ToolDescriptor(
            id=tool_id, name=name, display_name=name, description=name, category=category, enabled=enabled
        ),
        factory=factory,
    )


class TestRegistry:
    def test_defaults(self) -> None:
        registry = ToolRegistry()

        assert [d.id for d in registry.metadata()] == [
            "internal:calculator",
            "internal:get_weather",
            "internal:search_web",
            "internal:web_browser",
        ]
        assert "internal:calculator" in registry
        assert len(registry.by_category("utility")) == 2
        assert [d.descriptor.id for d in registry.by_tag("web")] == ["internal:search_web", "internal:web_browser"]

    def test_register_replace_unregister_reset(self) -> None:
        registry = ToolRegistry(defaults=[])
        registry.register(definition("custom:a"))
        registry.register(definition("custom:a", category=ToolCategory.DATA))

        assert len(registry) == 1
        assert registry.get("custom:a").descriptor.category == ToolCategory.DATA
        assert registry.unregister("custom:a") is True
        assert registry.unregister("custom:a") is False

        registry.register(definition("custom:b"))
        registry.reset()
        assert len(registry) == 0


class TestLoader:
    def test_search_is_skipped_without_key(self) -> None:
        result = ToolLoader(ToolRegistry()).load()

        assert "search_web" not in result.by_name()
        assert result.errors == []

    def test_search_loads_with_key(self) -> None:
        result = ToolLoader(ToolRegistry(), base_config={"serpapi_api_key": "k"}).load()

        assert "search_web" in result.by_name()

    def test_filters(self) -> None:
        registry = ToolRegistry(defaults=[])
        registry.register(definition("custom:a"))
        registry.register(definition("custom:b", category=ToolCategory.DATA))
        registry.register(definition("custom:off", enabled=False))
        loader = ToolLoader(registry)

        assert [t.id for t in loader.load().tools] == ["custom:a", "custom:b"]
        assert [t.id for t in loader.load_all().tools] == ["custom:a", "custom:b", "custom:off"]
        assert [t.id for t in loader.load_by_category(["data"]).tools] == ["custom:b"]
        assert [t.id for t in loader.load_by_ids(["custom:a", "custom:off"]).tools] == ["custom:a"]
        assert [t.id for t in loader.load(ToolLoadOptions(exclude_ids=["custom:a"])).tools] == ["custom:b"]

    def test_empty_include_list_loads_nothing(self) -> None:
        assert ToolLoader(ToolRegistry()).load(ToolLoadOptions(include_ids=[])).tools == []

    def test_build_failures_are_collected(self) -> None:
        def broken(config: dict[str, Any]) -> ToolExecutor:
            raise RuntimeError("no backend")

        registry = ToolRegistry(defaults=[])
        registry.register(ToolDefinition(descriptor=definition("custom:x").descriptor, factory=broken))
        registry.register(definition("custom:y"))

        result = ToolLoader(registry).load()

        assert [t.id for t in result.tools] == ["custom:y"]
        assert [(e.id, e.error) for e in result.errors] == [("custom:x", "no backend")]

    @pytest.mark.asyncio
    async def test_call_config_overrides_base(self) -> None:
        seen: dict[str, Any] = {}

        def factory(config: dict[str, Any]) -> ToolExecutor:
            seen.update(config)

            async def execute(args: dict[str, Any]) -> str:
                return "ok"

            return execute

        registry = ToolRegistry(defaults=[])
        registry.register(ToolDefinition(descriptor=definition("custom:z").descriptor, factory=factory))

        ToolLoader(registry, base_config={"a": 1, "b": 1}).load(ToolLoadOptions(config={"b": 2}))

        assert seen == {"a": 1, "b": 2}
