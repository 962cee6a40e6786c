"""
Web search tool backed by SerpAPI.

Returns the top organic results as URLs with short snippets; the model is
told to use the browser tool for full page content.
"""

from __future__ import annotations

import json

from typing import Any

import httpx

from core.constants import SERPAPI_URL
from models.tool_models import ToolCategory, ToolDescriptor
from tools.base import ToolDefinition, ToolExecutor, require_string
from utils.logger import logger

#: Number of organic results returned to the model
MAX_RESULTS = 5


def validate_search_config(config: dict[str, Any]) -> str | None:
    if not config.get("serpapi_api_key"):
        return "SERPAPI_API_KEY not found in config or environment variables"
    return None


def format_results(query: str, payload: dict[str, Any]) -> str:
    """Condense a SerpAPI response to the fields the model needs."""
    organic = payload.get("organic_results")
    if not isinstance(organic, list):
        return json.dumps(payload, ensure_ascii=False, indent=2)

    results = [
        {
            "position": i + 1,
            "title": r.get("title") or "No title",
            "url": r.get("link") or r.get("url") or "No URL",
            "snippet": r.get("snippet") or r.get("description") or "No description",
        }
        for i, r in enumerate(organic[:MAX_RESULTS])
    ]
    return json.dumps(
        {
            "query": query,
            "count": len(results),
            "note": "These are search result snippets. For full content, use web_browser with the URL.",
            "results": results,
        },
        ensure_ascii=False,
        indent=2,
    )


def build_search(config: dict[str, Any]) -> ToolExecutor:
    api_key = config["serpapi_api_key"]
    timeout = float(config.get("tool_http_timeout", 15.0))
    transport: httpx.AsyncBaseTransport | None = config.get("http_transport")

    async def execute(args: dict[str, Any]) -> str:
        query = require_string(args, "query")
        params = {"q": query, "api_key": api_key, "engine": "google", "hl": "en", "gl": "us"}
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(SERPAPI_URL, params=params)
            response.raise_for_status()
            payload = response.json()
        logger.debug(f"search_web returned {len(payload.get('organic_results') or [])} organic results")
        return format_results(query, payload)

    return execute


DEFINITION = ToolDefinition(
    descriptor=ToolDescriptor(
        id="internal:search_web",
        name="search_web",
        display_name="Web Search",
        description=(
            "Search the web and return URLs with brief snippets (previews only, not full content). "
            "Returns top 5 results. To get full page content, use the web_browser tool with the returned URLs."
        ),
        category=ToolCategory.SEARCH,
        tags=("search", "web", "google"),
        requires_approval=True,
        input_schema={
            "type": "object",
            "properties": {"query": {"type": "string", "description": "The search query string"}},
            "required": ["query"],
        },
    ),
    factory=build_search,
    validate_config=validate_search_config,
)
