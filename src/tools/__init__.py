"""
Tools Module - Function Calling Capabilities for the Agent
===========================================================

Modules:
    base: Tool, ToolDefinition and executor type aliases
    registry: ToolRegistry catalog keyed by tool id
    loader: ToolLoader with category/id/enabled filtering and error collection
    calculator: Arithmetic expressions (requires approval)
    weather: Mock weather lookup (runs without approval)
    search: SerpAPI web search (requires approval and SERPAPI_API_KEY)
    browser: Page fetch and text extraction (requires approval)

Tool Architecture:
    The registry stores ToolDefinitions: an immutable descriptor plus a factory
    that turns runtime configuration into an async executor. The loader builds
    executable Tool instances per turn, skipping tools whose configuration does
    not validate and collecting build failures instead of raising.

Example:
    Loading the utility tools::

        from tools.loader import ToolLoader
        from tools.registry import ToolRegistry

        loader = ToolLoader(ToolRegistry())
        result = loader.load_by_category(["utility"])
        tools = result.by_name()
"""
