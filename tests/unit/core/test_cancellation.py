from __future__ import annotations

from core.cancellation import CancellationToken


def test_new_token_is_not_cancelled() -> None:
    token = CancellationToken()

    assert token.is_cancelled is False
    assert token.cancel_reason is None


def test_cancel_is_idempotent_and_keeps_first_reason() -> None:
    token = CancellationToken()

    token.cancel("timeout")
    token.cancel("client disconnected")

    assert token.is_cancelled
    assert token.cancel_reason == "timeout"
