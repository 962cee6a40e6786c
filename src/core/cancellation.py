"""
Cancellation token for cooperative turn cancellation.

The stream adapter signals the token on timeout or client disconnect; the
turn executor checks it between steps and between tool calls, so a step
that already started always finishes and is persisted.
"""

from __future__ import annotations


class CancellationToken:
    """Cooperative cancellation signal shared by a stream and its producer.

    Usage:
        token = CancellationToken()

        # In the stream adapter:
        token.cancel("timeout")

        # In the executor loop:
        if token.is_cancelled:
            break
    """

    __slots__ = ("_cancel_reason", "_cancelled")

    def __init__(self) -> None:
        self._cancelled = False
        self._cancel_reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def cancel_reason(self) -> str | None:
        return self._cancel_reason

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation. Idempotent; the first reason is kept."""
        if self._cancelled:
            return
        self._cancel_reason = reason
        self._cancelled = True


__all__ = ["CancellationToken"]
