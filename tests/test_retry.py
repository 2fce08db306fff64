import pytest

from app.exceptions import StorageIOError, ValidationError
from app.utils.retry import retry_with_backoff


async def test_retries_until_success():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise StorageIOError()
        return "ok"

    result = await retry_with_backoff(
        flaky, max_attempts=3, initial_delay=0.001, retryable_exceptions=(StorageIOError,)
    )

    assert result == "ok"
    assert len(calls) == 3


async def test_plain_function_result_is_returned():
    assert await retry_with_backoff(lambda: 42, max_attempts=1) == 42


async def test_non_retryable_error_propagates_immediately():
    calls = []

    async def invalid():
        calls.append(1)
        raise ValidationError(message="bad")

    with pytest.raises(ValidationError):
        await retry_with_backoff(
            invalid, max_attempts=5, initial_delay=0.001, retryable_exceptions=(StorageIOError,)
        )
    assert len(calls) == 1


async def test_last_error_is_raised_when_attempts_run_out():
    async def broken():
        raise StorageIOError(details={"operation": "delete"})

    with pytest.raises(StorageIOError) as exc_info:
        await retry_with_backoff(broken, max_attempts=2, initial_delay=0.001, target="compensation.delete_original")
    assert exc_info.value.details == {"operation": "delete"}


async def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        await retry_with_backoff(lambda: None, max_attempts=0)
