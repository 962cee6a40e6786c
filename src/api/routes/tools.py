"""
Tool catalog endpoint for the tool picker.
"""

from __future__ import annotations

import json

from typing import Annotated, Any

from fastapi import APIRouter, Query

from api.dependencies import MCPSource, Registry
from core.exceptions import MCPError, ValidationError
from models.api_models import ToolMetadata, ToolMetadataResponse
from models.error_models import ErrorCode, ErrorDetail
from models.tool_models import MCPServerConfig
from utils.logger import logger

router = APIRouter()


def _parse_configs(mcp_url: str | None, mcp_configs: str | None) -> list[MCPServerConfig]:
    if mcp_configs:
        try:
            raw = json.loads(mcp_configs)
            if not isinstance(raw, list):
                raise ValueError("mcpConfigs must be a JSON array")
            return [MCPServerConfig.model_validate(item) for item in raw]
        except ValueError as e:
            raise ValidationError(
                "Invalid mcpConfigs parameter",
                errors=[ErrorDetail(field="mcpConfigs", message=str(e))],
                code=ErrorCode.VALIDATION_INVALID_FORMAT,
            ) from e
    if mcp_url:
        return [MCPServerConfig(url=mcp_url)]
    return []


@router.get(
    "/metadata",
    response_model=ToolMetadataResponse,
    summary="Tool metadata",
    description="Built-in tools plus the tools advertised by the given MCP servers.",
)
async def tool_metadata(
    registry: Registry,
    mcp_source: MCPSource,
    mcp_url: Annotated[str | None, Query(alias="mcpUrl")] = None,
    mcp_configs: Annotated[str | None, Query(alias="mcpConfigs", description="JSON array of {url, headers}")] = None,
) -> ToolMetadataResponse:
    internal = [ToolMetadata.from_descriptor(descriptor) for descriptor in registry.metadata()]
    servers = _parse_configs(mcp_url, mcp_configs)

    mcp: list[ToolMetadata] = []
    used: list[dict[str, Any]] = []
    seen: set[str] = set()
    for server in servers:
        if mcp_source is None:
            used.append({"url": server.url, "toolCount": 0, "error": "MCP support is not configured"})
            continue
        try:
            descriptors = await mcp_source.list_descriptors(server)
        except MCPError as e:
            logger.warning(f"Skipping MCP server {server.url}: {e.message}")
            used.append({"url": server.url, "toolCount": 0, "error": e.message})
            continue
        for descriptor in descriptors:
            if descriptor.id not in seen:
                seen.add(descriptor.id)
                mcp.append(ToolMetadata.from_descriptor(descriptor))
        used.append({"url": server.url, "toolCount": len(descriptors)})

    return ToolMetadataResponse(internal=internal, mcp=mcp, mcp_configs=used)
