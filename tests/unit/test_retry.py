"""
Unit Tests for Retry Policy
"""

from unittest.mock import AsyncMock

import pytest

from cgpa_tracker.errors import RemoteError
from cgpa_tracker.retry import READ_POLICY, WRITE_POLICY, RetryPolicy, with_retry


class TestRetryPolicy:
    def test_exponential_delay_with_cap(self):
        policy = RetryPolicy(attempts=10, base_delay=1.0, max_delay=30.0)
        assert [policy.delay_for(i) for i in range(6)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]

    def test_default_policies(self):
        assert READ_POLICY.attempts == 3
        assert WRITE_POLICY.attempts == 2

    def test_zero_attempts_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(attempts=0)


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        operation = AsyncMock(side_effect=[RemoteError("down", 503), RemoteError("down", 503), "ok"])
        sleep = AsyncMock()

        result = await with_retry(operation, READ_POLICY, sleep=sleep)

        assert result == "ok"
        assert operation.await_count == 3
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self):
        operation = AsyncMock(side_effect=RemoteError("down", 500))
        sleep = AsyncMock()

        with pytest.raises(RemoteError, match="down"):
            await with_retry(operation, WRITE_POLICY, sleep=sleep)

        assert operation.await_count == 2
        sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self):
        operation = AsyncMock(side_effect=[RemoteError("connection reset"), "ok"])
        assert await with_retry(operation, WRITE_POLICY, sleep=AsyncMock()) == "ok"

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self):
        operation = AsyncMock(side_effect=RemoteError("bad request", 400, "22P02"))
        sleep = AsyncMock()

        with pytest.raises(RemoteError):
            await with_retry(operation, READ_POLICY, sleep=sleep)

        assert operation.await_count == 1
        sleep.assert_not_awaited()
