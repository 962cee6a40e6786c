"""
Models Module - Data Models and Type Definitions
=================================================

Pydantic v2 models for conversation state, tools, threads, API payloads and
error responses.

Modules:
    agent_models: Message, ToolCall, Interrupt, PendingTask, Checkpoint, AgentEvent
    tool_models: ToolDescriptor, ToolCategory, load options and errors
    thread_models: Thread records and thread request/response schemas
    api_models: Stream, resume, state and message-deletion payloads
    error_models: Error codes, error envelope and stream error frame payload

Checkpoints are plain Pydantic models so they round-trip through JSON
(PostgreSQL JSONB, state queries) without custom codecs.
"""
