from __future__ import annotations

import json

from typing import Any
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from core.exceptions import MCPError
from models.error_models import ErrorCode
from models.tool_models import ToolCategory, ToolDescriptor


def mcp_descriptor(name: str) -> ToolDescriptor:
    return ToolDescriptor(
        id=f"mcp:{name}",
        name=name,
        display_name=name.title(),
        description=f"Remote {name}",
        category=ToolCategory.MCP,
        tags=("mcp",),
    )


def test_internal_metadata(client: TestClient) -> None:
    response = client.get("/api/tools/metadata")

    assert response.status_code == 200
    body = response.json()
    assert [t["id"] for t in body["internal"]] == [
        "internal:calculator",
        "internal:get_weather",
        "internal:search_web",
        "internal:web_browser",
    ]
    weather = body["internal"][1]
    assert weather["displayName"] == "Weather Information"
    assert weather["requiresApproval"] is False
    assert body["mcp"] == []
    assert body["mcpConfigs"] == []


def test_mcp_metadata_per_server(client: TestClient, app: Any) -> None:
    async def list_descriptors(server: Any) -> list[ToolDescriptor]:
        if "down" in server.url:
            raise MCPError("connection refused", mcp_url=server.url)
        return [mcp_descriptor("lookup"), mcp_descriptor("fetch")]

    app.state.mcp_source.list_descriptors = AsyncMock(side_effect=list_descriptors)
    configs = [
        {"url": "http://up.test/mcp", "headers": {"Authorization": "Bearer secret"}},
        {"url": "http://down.test/mcp"},
    ]

    response = client.get("/api/tools/metadata", params={"mcpConfigs": json.dumps(configs)})

    assert response.status_code == 200
    body = response.json()
    assert [t["id"] for t in body["mcp"]] == ["mcp:lookup", "mcp:fetch"]
    assert body["mcp"][0]["requiresApproval"] is True
    assert body["mcpConfigs"][0] == {"url": "http://up.test/mcp", "toolCount": 2}
    assert body["mcpConfigs"][1]["toolCount"] == 0
    assert "connection refused" in body["mcpConfigs"][1]["error"]
    assert "secret" not in response.text


def test_mcp_url_shorthand(client: TestClient, app: Any) -> None:
    app.state.mcp_source.list_descriptors = AsyncMock(return_value=[mcp_descriptor("lookup")])

    response = client.get("/api/tools/metadata", params={"mcpUrl": "http://up.test/mcp"})

    assert [t["name"] for t in response.json()["mcp"]] == ["lookup"]
    server = app.state.mcp_source.list_descriptors.call_args.args[0]
    assert server.url == "http://up.test/mcp"


def test_invalid_mcp_configs(client: TestClient) -> None:
    response = client.get("/api/tools/metadata", params={"mcpConfigs": "{not json"})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == ErrorCode.VALIDATION_INVALID_FORMAT.value
