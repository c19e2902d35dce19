import httpx
import pytest

from romsync.remote.error_handler import (
    ErrorCategory,
    RetryableRemoteError,
    SkippableRemoteError,
    categorize_error,
    get_error_message,
    handle_http_status,
    is_retryable_error,
    retry_with_backoff,
)


@pytest.mark.unit
@pytest.mark.parametrize("status", [500, 502, 503, 504, 408, 429])
def test_retryable_statuses(status):
    with pytest.raises(RetryableRemoteError) as exc_info:
        handle_http_status(status)
    assert exc_info.value.status_code == status


@pytest.mark.unit
@pytest.mark.parametrize("status", [400, 403, 404, 410])
def test_skippable_statuses(status):
    with pytest.raises(SkippableRemoteError):
        handle_http_status(status, context="listing GB")


@pytest.mark.unit
def test_success_statuses_pass():
    handle_http_status(200)
    handle_http_status(206)


@pytest.mark.unit
def test_error_message_includes_context():
    with pytest.raises(SkippableRemoteError, match=r"HTTP 404 Not found \(listing GB\)"):
        handle_http_status(404, context="listing GB")
    assert get_error_message(418) == "HTTP 418"


@pytest.mark.unit
def test_categorize_error():
    assert categorize_error(SkippableRemoteError("x", 404))[1] == ErrorCategory.NOT_FOUND
    assert categorize_error(SkippableRemoteError("x", 403))[1] == ErrorCategory.NON_RETRYABLE
    assert categorize_error(RetryableRemoteError("x", 503))[1] == ErrorCategory.RETRYABLE
    assert categorize_error(httpx.ConnectError("x"))[1] == ErrorCategory.RETRYABLE
    assert categorize_error(ValueError("x"))[1] == ErrorCategory.NON_RETRYABLE


@pytest.mark.unit
def test_is_retryable_error():
    assert is_retryable_error(httpx.ReadTimeout("slow"))
    assert is_retryable_error(ConnectionResetError())
    assert not is_retryable_error(SkippableRemoteError("gone", 404))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_with_backoff_retries_then_succeeds():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise RetryableRemoteError("busy", 503)
        return "ok"

    result = await retry_with_backoff(flaky, max_attempts=3, initial_delay=0)

    assert result == "ok"
    assert len(calls) == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_with_backoff_accepts_lambda_returning_coroutine():
    async def fetch(value):
        return value * 2

    assert await retry_with_backoff(lambda: fetch(21), initial_delay=0) == 42


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_with_backoff_does_not_retry_skippable():
    calls = []

    def missing():
        calls.append(1)
        raise SkippableRemoteError("gone", 404)

    with pytest.raises(SkippableRemoteError):
        await retry_with_backoff(missing, max_attempts=5, initial_delay=0)
    assert len(calls) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retry_with_backoff_gives_up():
    async def down():
        raise RetryableRemoteError("down", 500)

    with pytest.raises(RetryableRemoteError):
        await retry_with_backoff(down, max_attempts=2, initial_delay=0)
