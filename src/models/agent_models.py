"""
Conversation state models for the turn executor.

A thread's durable state is a single Checkpoint: the ordered message list,
the pending tasks that hold suspended tool calls, and the node scheduled to
run next. Everything here is plain Pydantic so a checkpoint round-trips
through JSON (PostgreSQL JSONB, HTTP state queries) without custom codecs.
"""

from __future__ import annotations

import uuid

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from models.tool_models import MCPServerConfig

MessageType = Literal["human", "ai", "tool", "error"]
ToolStatus = Literal["success", "error", "rejected"]
InterruptType = Literal["choice", "input", "confirm"]
EventType = Literal["ai", "tool", "interrupt"]


def new_message_id() -> str:
    """Generate a message id unique within a thread."""
    return f"msg_{uuid.uuid4().hex}"


def _utcnow() -> str:
    return datetime.now(UTC).isoformat()


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str = Field(..., min_length=1, description="Provider-assigned call id")
    name: str = Field(..., min_length=1, description="Tool name as exposed to the model")
    args: dict[str, Any] = Field(default_factory=dict)
    type: Literal["tool_call"] = "tool_call"


class Message(BaseModel):
    """One entry in a thread's history.

    Role-specific fields stay None/empty for the other roles:
    AI messages use tool_calls, tool_call_chunks, additional_kwargs and
    response_metadata; tool messages use tool_call_id, name and status.
    """

    type: MessageType
    id: str = Field(default_factory=new_message_id)
    content: str | list[dict[str, Any]] = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_chunks: list[dict[str, Any]] = Field(default_factory=list)
    additional_kwargs: dict[str, Any] = Field(default_factory=dict)
    response_metadata: dict[str, Any] = Field(default_factory=dict)
    tool_call_id: str | None = None
    name: str | None = None
    status: ToolStatus | None = None

    @classmethod
    def human(cls, text: str) -> Message:
        return cls(type="human", content=text)

    @classmethod
    def ai(
        cls,
        content: str,
        tool_calls: list[ToolCall] | None = None,
        response_metadata: dict[str, Any] | None = None,
    ) -> Message:
        return cls(
            type="ai",
            content=content,
            tool_calls=tool_calls or [],
            response_metadata=response_metadata or {},
        )

    @classmethod
    def tool(cls, tool_call_id: str, name: str, content: str, status: ToolStatus = "success") -> Message:
        return cls(type="tool", content=content, tool_call_id=tool_call_id, name=name, status=status)

    @property
    def text(self) -> str:
        """Plain-text view of content (text blocks joined)."""
        if isinstance(self.content, str):
            return self.content
        parts = [block.get("text", "") for block in self.content if block.get("type") == "text"]
        return "".join(parts)

    def to_event_data(self) -> dict[str, Any]:
        """Serialize for an ``ai``/``tool`` stream event or a history response."""
        return self.model_dump(mode="json", exclude_none=True)


class InterruptOption(BaseModel):
    """One choice offered to the human."""

    id: str
    label: str
    description: str | None = None


class InterruptMetadata(BaseModel):
    """Which tool call an interrupt gates."""

    model_config = ConfigDict(populate_by_name=True)

    tool_name: str = Field(alias="toolName")
    tool_call_id: str = Field(alias="toolCallId")
    tool_args: dict[str, Any] = Field(default_factory=dict, alias="toolArgs")


class InterruptState(str, Enum):
    """Lifecycle of one interrupt instance."""

    NONE = "none"
    PENDING = "pending"
    RESOLVED = "resolved"
    DISCARDED = "discarded"


class Interrupt(BaseModel):
    """A decision request that suspends the turn until resolved."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: InterruptType = "choice"
    question: str = Field(..., min_length=1)
    options: list[InterruptOption] | None = None
    context: str | None = None
    current_value: Any = Field(default=None, alias="currentValue")
    metadata: InterruptMetadata

    def to_event_data(self) -> dict[str, Any]:
        """Serialize for an ``interrupt`` stream event."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PendingTask(BaseModel):
    """A suspended tools step.

    ``ai_message_id`` names the AI message whose tool calls are being
    resolved; each interrupt gates one of those calls. Calls that ran before
    suspension already have tool messages in the checkpoint.
    """

    id: str = Field(default_factory=lambda: f"task_{uuid.uuid4().hex[:12]}")
    node: str = "tools"
    ai_message_id: str
    interrupts: list[Interrupt] = Field(default_factory=list)


class TurnOptions(BaseModel):
    """Per-turn configuration, captured at turn start and reused on resume."""

    provider: str | None = None
    model: str | None = None
    auto_tool_call: bool = False
    enabled_tools: list[str] | None = Field(
        default=None, description="Tool ids to expose; None exposes every enabled tool"
    )
    mcp_url: str | None = None
    mcp_configs: list[MCPServerConfig] = Field(default_factory=list)

    def mcp_servers(self) -> list[MCPServerConfig]:
        """All MCP servers for the turn; ``mcp_url`` is shorthand for a header-less config."""
        servers = list(self.mcp_configs)
        if self.mcp_url and all(server.url != self.mcp_url for server in servers):
            servers.insert(0, MCPServerConfig(url=self.mcp_url))
        return servers


class Checkpoint(BaseModel):
    """Latest durable state of one thread."""

    thread_id: str
    messages: list[Message] = Field(default_factory=list)
    pending_tasks: list[PendingTask] = Field(default_factory=list)
    next: list[str] = Field(default_factory=list)
    options: TurnOptions = Field(default_factory=TurnOptions)
    version: int = 0
    updated_at: str = Field(default_factory=_utcnow)

    @property
    def is_suspended(self) -> bool:
        return self.first_pending_interrupt() is not None

    @property
    def interrupt_state(self) -> InterruptState:
        return InterruptState.PENDING if self.is_suspended else InterruptState.NONE

    def first_pending_interrupt(self) -> tuple[PendingTask, Interrupt] | None:
        """First pending interrupt in task order, then interrupt order."""
        for task in self.pending_tasks:
            if task.interrupts:
                return task, task.interrupts[0]
        return None

    def find_message(self, message_id: str) -> Message | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    def answered_call_ids(self) -> set[str]:
        return {m.tool_call_id for m in self.messages if m.type == "tool" and m.tool_call_id}

    def last_ai_message(self) -> Message | None:
        for message in reversed(self.messages):
            if message.type == "ai":
                return message
        return None

    def unanswered_tool_calls(self, message: Message) -> list[ToolCall]:
        """Tool calls of ``message`` that have no tool message yet, in request order."""
        answered = self.answered_call_ids()
        return [call for call in message.tool_calls if call.id not in answered]


class AgentEvent(BaseModel):
    """One typed output event of the turn executor."""

    type: EventType
    data: dict[str, Any]

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data}


__all__ = [
    "AgentEvent",
    "Checkpoint",
    "EventType",
    "Interrupt",
    "InterruptMetadata",
    "InterruptOption",
    "InterruptState",
    "InterruptType",
    "Message",
    "MessageType",
    "PendingTask",
    "ToolCall",
    "ToolStatus",
    "TurnOptions",
    "new_message_id",
]
