"""
Core Application Layer - Turn Execution and Conversation State
==============================================================

Modules:
    executor: Turn executor state machine (checkpoint + step function)
    interrupts: Approval interrupts, decision parsing and rejection messages
    checkpoint: Checkpoint store contract and in-memory implementation
    threads: Thread store contract, title derivation and lifecycle manager
    model: Chat model contract and the OpenAI Chat Completions adapter
    exceptions: Application exception hierarchy
    prompts: System prompt
    constants: Configuration values and Pydantic settings validation

Key Components:

Turn Executor (executor.py):
    Advances a thread by explicit steps. Each step returns the next checkpoint
    and the events it produced; the executor persists the checkpoint before
    yielding the events (write-before-notify). The per-thread store lock keeps
    one turn in flight per thread.

Interrupt Controller (interrupts.py):
    Builds decision requests for gated tool calls and turns a human decision
    into either an executed call or an explicit "not executed" tool message.

See Also:
    :mod:`api.streaming`: SSE framing, timeout and cancellation
    :mod:`tools`: Tool registry and loader
"""
