"""
Request and response schemas for the agent and tool endpoints.

Wire names are camelCase (``threadId``, ``autoToolCall``); models accept
either spelling and always serialize by alias.
"""

from __future__ import annotations

import json

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.agent_models import Checkpoint, TurnOptions
from models.tool_models import MCPServerConfig, ToolDescriptor


def _split_list(value: Any) -> Any:
    """Accept a JSON array (``["a", "b"]``) or comma-separated ids (``a,b``)."""
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            return json.loads(text)
        return [item.strip() for item in text.split(",") if item.strip()]
    return value


class StreamOptions(BaseModel):
    """Per-turn options sent with a stream request."""

    model_config = ConfigDict(populate_by_name=True)

    provider: str | None = None
    model: str | None = None
    allow_tool: Literal["allow", "deny"] | None = Field(
        default=None, alias="allowTool", description="Legacy resume: answers the pending interrupt"
    )
    mcp_url: str | None = Field(default=None, alias="mcpUrl")
    mcp_configs: list[MCPServerConfig] = Field(default_factory=list, alias="mcpConfigs")
    auto_tool_call: bool = Field(default=False, alias="autoToolCall")
    enabled_tools: list[str] | None = Field(default=None, alias="enabledTools")

    @field_validator("enabled_tools", mode="before")
    @classmethod
    def parse_enabled_tools(cls, v: Any) -> Any:
        return _split_list(v)

    @field_validator("mcp_configs", mode="before")
    @classmethod
    def parse_mcp_configs(cls, v: Any) -> Any:
        if isinstance(v, str):
            return json.loads(v) if v.strip() else []
        return v

    def to_turn_options(self) -> TurnOptions:
        return TurnOptions(
            provider=self.provider,
            model=self.model,
            auto_tool_call=self.auto_tool_call,
            enabled_tools=self.enabled_tools,
            mcp_url=self.mcp_url,
            mcp_configs=self.mcp_configs,
        )


class StreamRequest(BaseModel):
    """Body of ``POST /api/agent/stream``.

    A body carrying ``value`` (even ``null``) is a resume; otherwise
    ``content`` starts a new turn.
    """

    model_config = ConfigDict(populate_by_name=True)

    thread_id: str | None = Field(default=None, alias="threadId", max_length=100)
    content: str | None = None
    options: StreamOptions = Field(default_factory=StreamOptions)
    value: Any = None

    @property
    def is_resume(self) -> bool:
        return "value" in self.model_fields_set


class ResumeRequest(BaseModel):
    """Body of ``POST /api/agent/resume``."""

    model_config = ConfigDict(populate_by_name=True)

    thread_id: str = Field(..., min_length=1, max_length=100, alias="threadId")
    value: Any = Field(..., description="Decision: approve/reject, boolean, or {action, data}")


class DeleteMessagesRequest(BaseModel):
    """Body of ``DELETE /api/agent/messages``."""

    model_config = ConfigDict(populate_by_name=True)

    thread_id: str = Field(..., min_length=1, alias="threadId")
    message_ids: list[str] = Field(..., min_length=1, alias="messageIds")


class DeleteMessagesResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    thread_id: str = Field(alias="threadId")
    deleted_count: int = Field(alias="deletedCount")


class StateValues(BaseModel):
    messages: list[dict[str, Any]] = Field(default_factory=list)


class StateResponse(BaseModel):
    """Current checkpoint of a thread as seen by the client."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    thread_id: str = Field(alias="threadId")
    has_interrupt: bool = Field(default=False, alias="hasInterrupt")
    interrupt_data: dict[str, Any] | None = Field(default=None, alias="interruptData")
    next: list[str] = Field(default_factory=list)
    values: StateValues = Field(default_factory=StateValues)

    @classmethod
    def from_checkpoint(cls, thread_id: str, checkpoint: Checkpoint | None) -> StateResponse:
        if checkpoint is None:
            return cls(thread_id=thread_id)
        pending = checkpoint.first_pending_interrupt()
        return cls(
            thread_id=thread_id,
            has_interrupt=pending is not None,
            interrupt_data=pending[1].to_event_data() if pending else None,
            next=checkpoint.next,
            values=StateValues(messages=[message.to_event_data() for message in checkpoint.messages]),
        )


class ToolMetadata(BaseModel):
    """Tool descriptor as shown in the tool picker."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    display_name: str = Field(alias="displayName")
    description: str
    category: str
    tags: list[str] = Field(default_factory=list)
    requires_approval: bool = Field(alias="requiresApproval")
    enabled: bool = True

    @classmethod
    def from_descriptor(cls, descriptor: ToolDescriptor) -> ToolMetadata:
        return cls(
            id=descriptor.id,
            name=descriptor.name,
            display_name=descriptor.display_name,
            description=descriptor.description,
            category=descriptor.category.value,
            tags=list(descriptor.tags),
            requires_approval=descriptor.requires_approval,
            enabled=descriptor.enabled,
        )


class ToolMetadataResponse(BaseModel):
    """Response of ``GET /api/tools/metadata``."""

    model_config = ConfigDict(populate_by_name=True)

    internal: list[ToolMetadata] = Field(default_factory=list)
    mcp: list[ToolMetadata] = Field(default_factory=list)
    mcp_configs: list[dict[str, Any]] = Field(default_factory=list, alias="mcpConfigs")


__all__ = [
    "DeleteMessagesRequest",
    "DeleteMessagesResponse",
    "ResumeRequest",
    "StateResponse",
    "StateValues",
    "StreamOptions",
    "StreamRequest",
    "ToolMetadata",
    "ToolMetadataResponse",
]
