"""
Web browser tool: fetches a page and returns its readable text.
"""

from __future__ import annotations

import re

from typing import Any
from urllib.parse import urlparse

import httpx

from bs4 import BeautifulSoup

from core.constants import BROWSER_MAX_CONTENT_LENGTH
from models.tool_models import ToolCategory, ToolDescriptor
from tools.base import ToolDefinition, ToolExecutor, require_string

_USER_AGENT = "Mozilla/5.0 (compatible; AgentStream/1.0)"


def clean_content(html: str, max_length: int = BROWSER_MAX_CONTENT_LENGTH) -> str:
    """Visible text of an HTML document, whitespace-collapsed and truncated."""
    soup = BeautifulSoup(html, "html.parser")
    for element in soup(["script", "style", "noscript", "nav", "footer", "header"]):
        element.decompose()

    title = soup.title.get_text(strip=True) if soup.title else ""
    text = re.sub(r"\s+", " ", soup.get_text(" ")).strip()
    if len(text) > max_length:
        text = text[:max_length] + "..."
    return f"{title}\n\n{text}" if title else text


def _validate_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid URL '{url}': only absolute http(s) URLs are supported")
    return url


def build_browser(config: dict[str, Any]) -> ToolExecutor:
    timeout = float(config.get("tool_http_timeout", 15.0))
    transport: httpx.AsyncBaseTransport | None = config.get("http_transport")

    async def execute(args: dict[str, Any]) -> str:
        url = _validate_url(require_string(args, "url"))
        async with httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
            headers={"User-Agent": _USER_AGENT},
        ) as client:
            response = await client.get(url)
            response.raise_for_status()

        content_type = response.headers.get("content-type", "")
        if "html" in content_type:
            return clean_content(response.text)
        return response.text[:BROWSER_MAX_CONTENT_LENGTH]

    return execute


DEFINITION = ToolDefinition(
    descriptor=ToolDescriptor(
        id="internal:web_browser",
        name="web_browser",
        display_name="Web Browser",
        description="Browse a web page and extract its full text content",
        category=ToolCategory.BROWSER,
        tags=("browser", "web", "content"),
        requires_approval=True,
        input_schema={
            "type": "object",
            "properties": {"url": {"type": "string", "description": "Absolute http(s) URL of the page"}},
            "required": ["url"],
        },
    ),
    factory=build_browser,
)
