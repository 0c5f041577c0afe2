"""Tests for rx.pipeline.cancel."""

import threading

import pytest

from rx.pipeline.cancel import CancelToken, OperationCancelled


class TestCancelToken:
    def test_initially_not_cancelled(self) -> None:
        token = CancelToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel(self) -> None:
        token = CancelToken()
        token.cancel()
        assert token.cancelled
        with pytest.raises(OperationCancelled):
            token.raise_if_cancelled()

    def test_sleep_returns_false_on_timeout(self) -> None:
        assert CancelToken().sleep(0.01) is False

    def test_sleep_wakes_on_cancel(self) -> None:
        token = CancelToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        try:
            assert token.sleep(10.0) is True
        finally:
            timer.cancel()
