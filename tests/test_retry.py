from unittest.mock import AsyncMock

import pytest

from levelfetch.api.retry import backoff_delay_ms, with_retry


@pytest.fixture
def sleep_mock(monkeypatch):
    mock = AsyncMock()
    monkeypatch.setattr("levelfetch.api.retry.asyncio.sleep", mock)
    return mock


def test_backoff_is_linear_with_a_floor():
    assert backoff_delay_ms(1000, 1) == 1000
    assert backoff_delay_ms(1000, 3) == 3000
    assert backoff_delay_ms(0, 1) == 50
    assert backoff_delay_ms(10, 2) == 50


async def test_returns_first_success_without_sleeping(sleep_mock):
    operation = AsyncMock(return_value="ok")

    assert await with_retry(3, 1000, operation) == "ok"
    operation.assert_awaited_once_with(1)
    sleep_mock.assert_not_awaited()


async def test_retries_until_success(sleep_mock):
    attempts = []

    async def flaky(attempt):
        attempts.append(attempt)
        if attempt < 3:
            raise ConnectionError(f"attempt {attempt}")
        return "payload"

    assert await with_retry(5, 200, flaky) == "payload"
    assert attempts == [1, 2, 3]
    assert [c.args[0] for c in sleep_mock.await_args_list] == [0.2, 0.4]


async def test_raises_last_exception_after_all_attempts(sleep_mock):
    async def always_fails(attempt):
        raise ValueError(f"attempt {attempt}")

    with pytest.raises(ValueError, match="attempt 3"):
        await with_retry(3, 0, always_fails)

    delays = [c.args[0] for c in sleep_mock.await_args_list]
    assert len(delays) == 2
    assert all(d >= 0.05 for d in delays)
    assert delays == sorted(delays)


async def test_single_attempt_never_sleeps(sleep_mock):
    operation = AsyncMock(side_effect=RuntimeError("nope"))

    with pytest.raises(RuntimeError):
        await with_retry(1, 1000, operation)
    assert operation.await_count == 1
    sleep_mock.assert_not_awaited()
