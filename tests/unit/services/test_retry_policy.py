import asyncio
from unittest.mock import AsyncMock

import pytest

from report_assist.core.exceptions import ErrorKind
from report_assist.core.exceptions import GenerationError
from report_assist.services.retry_policy import RetryPolicy


def test_defaults():
    policy = RetryPolicy()
    assert policy.max_attempts == 3
    assert policy.base_delay == 1.0


def test_rejects_zero_attempts():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


@pytest.mark.parametrize(
    "attempt, max_attempts, kind, expected",
    [
        (1, 3, ErrorKind.RATE_LIMIT, True),
        (2, 3, ErrorKind.SERVER, True),
        (3, 3, ErrorKind.SERVER, False),
        (1, 3, ErrorKind.AUTHENTICATION, False),
        (1, 3, ErrorKind.INVALID_REQUEST, False),
        (1, 1, ErrorKind.TIMEOUT, False),
    ],
)
def test_should_retry(attempt, max_attempts, kind, expected):
    error = GenerationError("x", kind)
    assert RetryPolicy.should_retry(attempt, max_attempts, error) is expected


def test_delay_doubles_per_attempt():
    assert RetryPolicy.delay_for(1, 1.0) == 1.0
    assert RetryPolicy.delay_for(2, 1.0) == 2.0
    assert RetryPolicy.delay_for(3, 1.0) == 4.0
    assert RetryPolicy.delay_for(2, 0.5) == 1.0


@pytest.mark.asyncio
async def test_retrying_sleeps_between_attempts_only():
    sleep = AsyncMock()
    policy = RetryPolicy(max_attempts=3, base_delay=1.0)
    calls = 0

    async for attempt in policy.retrying(sleep):
        with attempt:
            calls += 1
            if calls < 3:
                raise GenerationError("busy", ErrorKind.RATE_LIMIT)

    assert calls == 3
    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_retrying_reraises_non_retryable_immediately():
    sleep = AsyncMock()
    policy = RetryPolicy(max_attempts=3, base_delay=1.0)
    calls = 0

    with pytest.raises(GenerationError) as excinfo:
        async for attempt in policy.retrying(sleep):
            with attempt:
                calls += 1
                raise GenerationError("bad key", ErrorKind.AUTHENTICATION)

    assert excinfo.value.kind is ErrorKind.AUTHENTICATION
    assert calls == 1
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_retrying_reraises_last_error_when_exhausted():
    policy = RetryPolicy(max_attempts=2, base_delay=0.0)
    calls = 0

    with pytest.raises(GenerationError) as excinfo:
        async for attempt in policy.retrying(AsyncMock()):
            with attempt:
                calls += 1
                raise GenerationError(f"down {calls}", ErrorKind.SERVER)

    assert calls == 2
    assert excinfo.value.message == "down 2"


@pytest.mark.asyncio
async def test_retrying_never_retries_cancellation():
    sleep = AsyncMock()
    policy = RetryPolicy(max_attempts=3, base_delay=1.0)
    calls = 0

    with pytest.raises(asyncio.CancelledError):
        async for attempt in policy.retrying(sleep):
            with attempt:
                calls += 1
                raise asyncio.CancelledError()

    assert calls == 1
    sleep.assert_not_awaited()
