"""Route modules for the Agent Stream API.

agent: turn streaming, resume, state and history
threads: thread list and lifecycle
tools: tool catalog
health: probes
"""

from __future__ import annotations

from . import agent, health, threads, tools

__all__ = ["agent", "health", "threads", "tools"]
