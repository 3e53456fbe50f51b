"""Tests for src.provisioning.shutdown."""

from __future__ import annotations

import signal
import threading

import pytest

from src.provisioning.exceptions import ProvisionAbortedError
from src.provisioning.shutdown import CancellationToken, GracefulShutdown


class TestCancellationToken:
    def test_initial_state(self):
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel_sets_reason(self):
        token = CancellationToken()
        assert token.cancel("Process terminated") is True
        assert token.cancelled
        assert token.reason == "Process terminated"

    def test_first_reason_wins(self):
        token = CancellationToken()
        token.cancel("Process interrupted")
        assert token.cancel("Process terminated") is False
        assert token.reason == "Process interrupted"

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.cancel("Process terminated")
        with pytest.raises(ProvisionAbortedError) as exc_info:
            token.raise_if_cancelled()
        assert exc_info.value.reason == "Process terminated"

    def test_wait_returns_early_on_cancel(self):
        token = CancellationToken()
        threading.Timer(0.05, token.cancel).start()
        assert token.wait(5) is True

    def test_wait_times_out(self):
        assert CancellationToken().wait(0.01) is False


class TestGracefulShutdown:
    def test_handler_cancels_token(self):
        token = CancellationToken()
        shutdown = GracefulShutdown(token)
        shutdown._signal_handler(signal.SIGTERM, None)
        assert shutdown.should_stop
        assert token.reason == "Process terminated"

    def test_sigint_reason(self):
        token = CancellationToken()
        GracefulShutdown(token)._signal_handler(signal.SIGINT, None)
        assert token.reason == "Process interrupted"

    def test_repeated_signal_keeps_first_reason(self):
        token = CancellationToken()
        shutdown = GracefulShutdown(token)
        shutdown._signal_handler(signal.SIGINT, None)
        shutdown._signal_handler(signal.SIGTERM, None)
        assert token.reason == "Process interrupted"

    def test_reentrant_call_is_ignored(self):
        token = CancellationToken()
        shutdown = GracefulShutdown(token)
        shutdown._handling = True
        shutdown._signal_handler(signal.SIGTERM, None)
        assert not token.cancelled

    def test_install_and_restore(self):
        previous = signal.getsignal(signal.SIGTERM)
        shutdown = GracefulShutdown(CancellationToken())
        shutdown.install()
        try:
            assert signal.getsignal(signal.SIGTERM) == shutdown._signal_handler
        finally:
            shutdown.restore()
        assert signal.getsignal(signal.SIGTERM) == previous

    def test_real_signal_only_cancels(self):
        token = CancellationToken()
        shutdown = GracefulShutdown(token)
        shutdown.install()
        try:
            signal.raise_signal(signal.SIGTERM)
        finally:
            shutdown.restore()
        assert token.cancelled
        assert token.reason == "Process terminated"
