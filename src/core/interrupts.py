"""
Interrupt controller.

Builds approval interrupts for gated tool calls, parses the human's
decision, and produces the tool messages that keep history well-formed when
a call is rejected or superseded. Everything here is pure: functions take a
Checkpoint and return a new one, persistence is the executor's job.

Interrupt lifecycle: NONE -> PENDING -> RESOLVED -> NONE, or DISCARDED when
new user text arrives while the thread is suspended.
"""

from __future__ import annotations

import json

from dataclasses import dataclass
from typing import Any

from core.exceptions import InterruptNotFoundError, ValidationError
from models.agent_models import (
    Checkpoint,
    Interrupt,
    InterruptMetadata,
    InterruptOption,
    InterruptState,
    Message,
    PendingTask,
    ToolCall,
)
from models.error_models import ErrorCode, ErrorDetail
from utils.logger import logger

APPROVE_VALUES = frozenset({"approve", "approved", "allow", "continue", "yes"})
REJECT_VALUES = frozenset({"reject", "rejected", "deny", "no"})

APPROVAL_OPTIONS = [
    InterruptOption(id="approve", label="Approve", description="Run the tool with these arguments"),
    InterruptOption(id="reject", label="Reject", description="Do not run the tool"),
]


@dataclass(frozen=True)
class Decision:
    """Parsed human answer to an approval interrupt."""

    approved: bool
    feedback: str | None = None


def _invalid(value: Any) -> ValidationError:
    return ValidationError(
        message="Invalid interrupt decision; expected approve or reject",
        errors=[ErrorDetail(field="value", message=f"Unrecognized decision: {value!r}", value=value)],
        code=ErrorCode.VALIDATION_INVALID_DECISION,
    )


def parse_decision(value: Any) -> Decision:
    """Map a resume value onto approve/reject.

    Accepts plain strings (case-insensitive), booleans, the structured
    ``{"action": "continue"}`` / ``{"action": "feedback", "data": ...}``
    forms, and an option pick ``{"id": "approve" | "reject"}``.

    Raises:
        ValidationError: For anything else; the interrupt stays pending.
    """
    if isinstance(value, bool):
        return Decision(approved=value)

    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in APPROVE_VALUES:
            return Decision(approved=True)
        if normalized in REJECT_VALUES:
            return Decision(approved=False)
        raise _invalid(value)

    if isinstance(value, dict):
        action = value.get("action")
        if action == "continue":
            return Decision(approved=True)
        if action == "feedback":
            data = value.get("data")
            return Decision(approved=False, feedback=str(data) if data not in (None, "") else None)
        option = value.get("id")
        if isinstance(option, str):
            return parse_decision(option)

    raise _invalid(value)


def build_interrupt(call: ToolCall) -> Interrupt:
    """Approval request for one gated tool call."""
    return Interrupt(
        id=f"int_{call.id}",
        type="choice",
        question=f'Agent wants to call tool "{call.name}", approve?',
        options=[option.model_copy() for option in APPROVAL_OPTIONS],
        context=json.dumps(call.args, indent=2, ensure_ascii=False, default=str),
        current_value="pending",
        metadata=InterruptMetadata(tool_name=call.name, tool_call_id=call.id, tool_args=call.args),
    )


def rejection_message(call: ToolCall, feedback: str | None = None) -> Message:
    """Tool message recorded when the human rejects a call."""
    content = (
        f'Tool "{call.name}" was NOT executed: the user rejected this call. '
        "No result is available; do not assume or invent one."
    )
    if feedback:
        content += f" User feedback: {feedback}"
    return Message.tool(call.id, call.name, content, status="rejected")


def superseded_message(call: ToolCall) -> Message:
    """Tool message for a call abandoned because the user sent new input."""
    return Message.tool(
        call.id,
        call.name,
        f'Tool "{call.name}" was not executed: it was superseded by a new user message.',
        status="rejected",
    )


def suspend(checkpoint: Checkpoint, ai_message: Message, gated: list[ToolCall]) -> tuple[Checkpoint, Interrupt]:
    """Attach one interrupt per gated call to a single pending task.

    Returns the suspended checkpoint and the interrupt to emit first.
    """
    task = PendingTask(ai_message_id=ai_message.id, interrupts=[build_interrupt(call) for call in gated])
    suspended = checkpoint.model_copy(update={"pending_tasks": [task], "next": ["tools"]})
    return suspended, task.interrupts[0]


def take_first_interrupt(checkpoint: Checkpoint) -> tuple[Checkpoint, Interrupt, ToolCall]:
    """Remove the first pending interrupt and return the call it gates.

    When the owning task has no interrupts left it is dropped and the agent
    node is scheduled; otherwise the thread stays on the tools node.

    Raises:
        InterruptNotFoundError: If the thread is not suspended.
    """
    pending = checkpoint.first_pending_interrupt()
    if pending is None:
        raise InterruptNotFoundError(checkpoint.thread_id)
    task, interrupt = pending

    # Deleting the AI message drops its pending task, so the call is always present.
    ai_message = checkpoint.find_message(task.ai_message_id)
    call = next(c for c in ai_message.tool_calls if c.id == interrupt.metadata.tool_call_id)

    remaining = task.interrupts[1:]
    tasks = []
    for existing in checkpoint.pending_tasks:
        if existing.id != task.id:
            tasks.append(existing)
        elif remaining:
            tasks.append(existing.model_copy(update={"interrupts": remaining}))

    next_nodes = ["tools"] if any(t.interrupts for t in tasks) else ["agent"]
    updated = checkpoint.model_copy(update={"pending_tasks": tasks, "next": next_nodes})
    logger.info(
        f"Interrupt {interrupt.id} {InterruptState.RESOLVED.value} for tool {call.name}",
        thread_id=checkpoint.thread_id,
    )
    return updated, interrupt, call


def discard_pending(checkpoint: Checkpoint) -> tuple[Checkpoint, list[Message]]:
    """Abandon every unanswered tool call so new user input can be appended.

    Covers suspended interrupts and calls left unanswered by a cancelled
    tools step. Each gets a "not executed" tool message.
    """
    last_ai = checkpoint.last_ai_message()
    unanswered = checkpoint.unanswered_tool_calls(last_ai) if last_ai is not None else []

    if checkpoint.is_suspended:
        count = sum(len(task.interrupts) for task in checkpoint.pending_tasks)
        logger.info(
            f"{count} pending interrupt(s) {InterruptState.DISCARDED.value} by new user input",
            thread_id=checkpoint.thread_id,
        )

    messages = [superseded_message(call) for call in unanswered]
    updated = checkpoint.model_copy(
        update={"messages": [*checkpoint.messages, *messages], "pending_tasks": [], "next": []}
    )
    return updated, messages


__all__ = [
    "APPROVAL_OPTIONS",
    "APPROVE_VALUES",
    "REJECT_VALUES",
    "Decision",
    "build_interrupt",
    "discard_pending",
    "parse_decision",
    "rejection_message",
    "superseded_message",
    "suspend",
    "take_first_interrupt",
]
