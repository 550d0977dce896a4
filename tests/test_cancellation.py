"""Tests for cancellation tokens and the two-stage shutdown controller."""

from __future__ import annotations

import signal
import threading
import time
from unittest.mock import MagicMock

import pytest

from harborqa.core.cancellation import FORCE_QUIT_EXIT_CODE, CancellationToken, ShutdownController
from harborqa.errors import OperationCancelledError


class TestCancellationToken:
    def test_new_token_is_not_cancelled(self) -> None:
        token = CancellationToken()

        assert not token.cancelled
        assert token.reason is None
        assert token.remaining() is None

    def test_cancel_sets_reason(self) -> None:
        token = CancellationToken()
        token.cancel("signal 2")

        assert token.cancelled
        assert token.interrupted
        assert token.reason == "signal 2"

    def test_cancel_is_idempotent(self) -> None:
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")

        assert token.reason == "first"

    def test_deadline(self) -> None:
        token = CancellationToken(timeout=0.01)
        time.sleep(0.02)

        assert token.cancelled
        assert token.deadline_exceeded
        assert not token.interrupted
        assert token.reason == "deadline exceeded"

    def test_child_follows_parent(self) -> None:
        parent = CancellationToken()
        child = parent.child(timeout=60)

        parent.cancel("stop")

        assert child.cancelled
        assert child.interrupted
        assert child.reason == "stop"

    def test_child_deadline_does_not_cancel_parent(self) -> None:
        parent = CancellationToken()
        child = parent.child(timeout=0.01)
        time.sleep(0.02)

        assert child.cancelled
        assert not parent.cancelled

    def test_child_of_cancelled_parent_starts_cancelled(self) -> None:
        parent = CancellationToken()
        parent.cancel()

        assert parent.child().cancelled

    def test_closed_child_is_detached(self) -> None:
        parent = CancellationToken()
        children = [parent.child(timeout=60) for _ in range(3)]
        for child in children[:2]:
            child.close()

        parent.cancel("stop")

        assert parent._children == []
        assert not children[0].interrupted
        assert children[2].interrupted

    def test_close_is_idempotent(self) -> None:
        parent = CancellationToken()
        child = parent.child()
        child.close()
        child.close()

        CancellationToken().close()
        assert parent._children == []

    def test_child_inherits_shorter_parent_deadline(self) -> None:
        parent = CancellationToken(timeout=1)
        child = parent.child(timeout=100)

        assert child.remaining() <= 1

    def test_wait_returns_early_on_cancel(self) -> None:
        token = CancellationToken()
        threading.Timer(0.05, token.cancel).start()

        started = time.monotonic()
        assert token.wait(5) is True
        assert time.monotonic() - started < 2

    def test_wait_returns_false_when_not_cancelled(self) -> None:
        assert CancellationToken().wait(0.01) is False

    def test_raise_if_cancelled(self) -> None:
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel("bye")

        with pytest.raises(OperationCancelledError, match="bye"):
            token.raise_if_cancelled()


class TestShutdownController:
    def test_first_signal_cancels_gracefully(self) -> None:
        token = CancellationToken()
        notify = MagicMock()
        exit_func = MagicMock()
        controller = ShutdownController(token, notify=notify, exit_func=exit_func)

        controller.handle(signal.SIGINT)

        assert token.cancelled
        exit_func.assert_not_called()
        assert "gracefully" in notify.call_args_list[0].args[0]

    def test_second_signal_forces_exit(self) -> None:
        token = CancellationToken()
        notify = MagicMock()
        exit_func = MagicMock()
        controller = ShutdownController(token, notify=notify, exit_func=exit_func)

        controller.handle(signal.SIGINT)
        controller.handle(signal.SIGINT)

        exit_func.assert_called_once_with(FORCE_QUIT_EXIT_CODE)
        messages = " ".join(c.args[0] for c in notify.call_args_list)
        assert "harborqa cleanup" in messages

    def test_install_and_restore(self) -> None:
        previous = signal.getsignal(signal.SIGTERM)
        controller = ShutdownController(CancellationToken(), exit_func=MagicMock())

        controller.install((signal.SIGTERM,))
        try:
            assert signal.getsignal(signal.SIGTERM) == controller.handle
        finally:
            controller.restore()

        assert signal.getsignal(signal.SIGTERM) == previous
