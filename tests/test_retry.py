"""
Tests for transient/permanent error classification and the backoff loop.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from mapstudio.core.errors import PermanentServiceError, TransientServiceError, ValidationError
from mapstudio.services.retry import is_transient_error, with_retry


def flaky(*outcomes):
    """Async callable returning/raising ``outcomes`` one call at a time."""
    return AsyncMock(side_effect=list(outcomes))


# ============================================================
# CLASSIFICATION
# ============================================================

class TestClassification:

    @pytest.mark.parametrize("message", [
        "503 Service Unavailable",
        "Network error while contacting host",
        "Request timeout",
        "The operation was aborted",
        "socket hang up",
        "WSARecv failed",
        "read ECONNRESET",
    ])
    def test_network_vocabulary_is_transient(self, message):
        assert is_transient_error(RuntimeError(message)) is True

    def test_connection_and_timeout_types_are_transient(self):
        assert is_transient_error(ConnectionResetError("peer went away"))
        assert is_transient_error(asyncio.TimeoutError())
        assert is_transient_error(TransientServiceError("down"))

    @pytest.mark.parametrize("message", [
        "401 Unauthorized: invalid API key",
        "Quota exceeded for this project",
        "AI returned invalid JSON: Expecting value",
    ])
    def test_everything_else_is_permanent(self, message):
        assert is_transient_error(RuntimeError(message)) is False

    def test_typed_permanent_errors_win_over_wording(self):
        assert not is_transient_error(PermanentServiceError("network config rejected"))
        assert not is_transient_error(ValidationError("timeout field missing"))


# ============================================================
# BACKOFF LOOP
# ============================================================

class TestWithRetry:

    def test_success_on_first_attempt_does_not_sleep(self):
        fn = flaky("ok")
        sleep = AsyncMock()
        assert asyncio.run(with_retry(fn, retries=2, base_delay_ms=800, sleep=sleep)) == "ok"
        assert fn.await_count == 1
        sleep.assert_not_awaited()

    def test_transient_failure_then_success(self):
        fn = flaky(ConnectionError("socket hang up"), "tree")
        sleep = AsyncMock()
        result = asyncio.run(with_retry(fn, retries=2, base_delay_ms=800, sleep=sleep))
        assert result == "tree"
        assert fn.await_count == 2
        sleep.assert_awaited_once_with(0.8)

    def test_backoff_doubles_each_attempt(self):
        fn = flaky(RuntimeError("network down"), RuntimeError("network down"), "ok")
        sleep = AsyncMock()
        asyncio.run(with_retry(fn, retries=2, base_delay_ms=800, sleep=sleep))
        assert [c.args[0] for c in sleep.await_args_list] == [0.8, 1.6]

    def test_exhaustion_reraises_last_transient_error(self):
        last = RuntimeError("still unavailable")
        fn = flaky(RuntimeError("unavailable"), RuntimeError("unavailable"), last)
        sleep = AsyncMock()
        with pytest.raises(RuntimeError) as exc:
            asyncio.run(with_retry(fn, retries=2, base_delay_ms=800, sleep=sleep))
        assert exc.value is last
        assert fn.await_count == 3
        assert sleep.await_count == 2

    def test_permanent_error_is_not_retried(self):
        fn = flaky(RuntimeError("401 invalid api key"), "never reached")
        sleep = AsyncMock()
        with pytest.raises(RuntimeError, match="invalid api key"):
            asyncio.run(with_retry(fn, retries=2, base_delay_ms=800, sleep=sleep))
        assert fn.await_count == 1
        sleep.assert_not_awaited()

    def test_zero_retries_means_one_attempt(self):
        fn = flaky(ConnectionError("socket"))
        sleep = AsyncMock()
        with pytest.raises(ConnectionError):
            asyncio.run(with_retry(fn, retries=0, base_delay_ms=800, sleep=sleep))
        assert fn.await_count == 1
        sleep.assert_not_awaited()

    def test_defaults_come_from_settings(self, monkeypatch):
        from mapstudio.core.config import settings

        monkeypatch.setattr(settings, "MAX_RETRIES", 1)
        monkeypatch.setattr(settings, "RETRY_BASE_DELAY_MS", 100)
        sleep = AsyncMock()
        monkeypatch.setattr("mapstudio.services.retry._sleep", sleep)

        fn = flaky(TimeoutError("timeout"), TimeoutError("timeout"))
        with pytest.raises(TimeoutError):
            asyncio.run(with_retry(fn))
        assert fn.await_count == 2
        sleep.assert_awaited_once_with(0.1)
