"""
Tests for src.utils module.

Covers:
    - utc_now(): timezone-aware UTC datetime
    - generate_id(): UUID4 string generation
    - ensure_utc(): naive/aware datetime UTC conversion
    - with_retry() / retry_async(): bounded fixed-delay retry
    - is_transient_platform_error(): retry classification
    - ensure_signature(): idempotent attribution
    - parse_time_slot() / next_weekday_at() / pick_schedule_date()
"""

import random
from datetime import datetime, timezone, timedelta
from unittest.mock import patch, AsyncMock, MagicMock
from uuid import UUID

import httpx
import pytest

from src.exceptions import (
    PlatformAuthError,
    PlatformRateLimitError,
    PreconditionError,
    RetryExhaustedError,
    TwitterAPIError,
)
from src.utils import (
    SATURDAY,
    ensure_signature,
    ensure_utc,
    generate_id,
    is_transient_platform_error,
    next_weekday_at,
    parse_time_slot,
    pick_schedule_date,
    retry_async,
    utc_now,
    with_retry,
)


# ===========================================================================
# utc_now()
# ===========================================================================


def test_utc_now_returns_timezone_aware_utc():
    """utc_now() must return a datetime whose tzinfo is UTC."""
    result = utc_now()
    assert result.tzinfo is not None
    assert result.tzinfo == timezone.utc


def test_utc_now_returns_current_time():
    """utc_now() must return a time within 2 seconds of datetime.now(utc)."""
    before = datetime.now(timezone.utc)
    result = utc_now()
    after = datetime.now(timezone.utc)
    assert before <= result <= after
    assert (after - before) < timedelta(seconds=2)


# ===========================================================================
# generate_id()
# ===========================================================================


def test_generate_id_returns_valid_uuid4_string():
    """generate_id() must return a string that parses as a valid UUID4."""
    result = generate_id()
    assert isinstance(result, str)
    parsed = UUID(result)
    # UUID version 4
    assert parsed.version == 4


def test_generate_id_returns_unique_values():
    """Successive calls to generate_id() must produce distinct values."""
    ids = {generate_id() for _ in range(100)}
    assert len(ids) == 100


# ===========================================================================
# ensure_utc()
# ===========================================================================


def test_ensure_utc_naive_datetime_adds_utc():
    """A naive (tzinfo=None) datetime gets UTC attached via replace."""
    naive = datetime(2025, 6, 15, 12, 0, 0)
    assert naive.tzinfo is None

    result = ensure_utc(naive)

    assert result.tzinfo == timezone.utc
    # The date/time components must be unchanged (not shifted).
    assert result.year == 2025
    assert result.month == 6
    assert result.day == 15
    assert result.hour == 12
    assert result.minute == 0
    assert result.second == 0


def test_ensure_utc_already_utc_returns_same_value():
    """A UTC-aware datetime is returned unchanged."""
    aware = datetime(2025, 1, 1, 8, 30, 0, tzinfo=timezone.utc)
    result = ensure_utc(aware)
    assert result == aware
    assert result.tzinfo == timezone.utc


def test_ensure_utc_non_utc_aware_converts_to_utc():
    """A timezone-aware datetime in a non-UTC zone is converted to UTC."""
    # UTC+5
    plus_five = timezone(timedelta(hours=5))
    dt_plus5 = datetime(2025, 6, 15, 17, 0, 0, tzinfo=plus_five)

    result = ensure_utc(dt_plus5)

    assert result.tzinfo == timezone.utc
    # 17:00 UTC+5 == 12:00 UTC
    assert result.hour == 12
    assert result.day == 15


# ===========================================================================
# with_retry() -- synchronous functions
# ===========================================================================


@patch("src.utils.time_module.sleep")
def test_with_retry_sync_succeeds_first_try(mock_sleep):
    """Sync function that succeeds immediately is not retried."""

    @with_retry(max_attempts=3, delay=2.0)
    def succeed():
        return "ok"

    assert succeed() == "ok"
    mock_sleep.assert_not_called()


@patch("src.utils.time_module.sleep")
def test_with_retry_sync_uses_fixed_delay(mock_sleep):
    """Every retry waits the same delay (no exponential growth)."""

    @with_retry(max_attempts=3, delay=1.5, operation_name="test_op")
    def always_fail():
        raise RuntimeError("permanent")

    with pytest.raises(RetryExhaustedError) as exc_info:
        always_fail()

    err = exc_info.value
    assert err.operation == "test_op"
    assert err.attempts == 3
    assert isinstance(err.last_error, RuntimeError)
    assert mock_sleep.call_count == 2
    assert [c.args[0] for c in mock_sleep.call_args_list] == [1.5, 1.5]


@patch("src.utils.time_module.sleep")
def test_with_retry_respects_retryable_exceptions(mock_sleep):
    """Non-retryable exceptions propagate immediately without retrying."""

    @with_retry(max_attempts=3, delay=1.0, retryable_exceptions=(ValueError,))
    def raise_type_error():
        raise TypeError("not retryable")

    with pytest.raises(TypeError, match="not retryable"):
        raise_type_error()

    mock_sleep.assert_not_called()


@patch("src.utils.time_module.sleep")
def test_with_retry_retry_if_marks_error_fatal(mock_sleep):
    """A retry_if predicate returning False re-raises the original error."""
    calls = []

    @with_retry(max_attempts=3, retry_if=lambda exc: "transient" in str(exc))
    def fatal():
        calls.append(1)
        raise ValueError("bad credentials")

    with pytest.raises(ValueError, match="bad credentials"):
        fatal()

    assert len(calls) == 1
    mock_sleep.assert_not_called()


def test_with_retry_preserves_function_name():
    """The decorated function preserves the original __name__ via functools.wraps."""

    @with_retry(max_attempts=2)
    def my_special_function():
        pass

    assert my_special_function.__name__ == "my_special_function"


def test_with_retry_preserves_async_function_name():
    """The decorated async function preserves the original __name__ via functools.wraps."""

    @with_retry(max_attempts=2)
    async def my_async_function():
        pass

    assert my_async_function.__name__ == "my_async_function"


# ===========================================================================
# retry_async()
# ===========================================================================


@pytest.mark.asyncio
async def test_retry_async_retries_and_succeeds_second_try():
    """Async function that fails once then succeeds is retried exactly once."""
    with patch("src.utils.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        func = AsyncMock(side_effect=[ValueError("transient"), "recovered"])

        result = await retry_async(func, "arg", max_attempts=2, delay=3.0)

        assert result == "recovered"
        assert func.await_count == 2
        func.assert_awaited_with("arg")
        mock_sleep.assert_awaited_once_with(3.0)


@pytest.mark.asyncio
async def test_retry_async_exhausts_attempts():
    """The budget is strict: max_attempts calls, then RetryExhaustedError."""
    with patch("src.utils.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        func = AsyncMock(side_effect=RuntimeError("still down"))

        with pytest.raises(RetryExhaustedError) as exc_info:
            await retry_async(func, max_attempts=2, delay=1.0, operation_name="upload")

        assert func.await_count == 2
        assert exc_info.value.attempts == 2
        assert exc_info.value.operation == "upload"
        assert str(exc_info.value.last_error) == "still down"
        assert mock_sleep.await_count == 1


@pytest.mark.asyncio
async def test_retry_async_calls_on_retry_hook_between_attempts():
    """on_retry runs after each failed, non-final attempt (sync or async hook)."""
    with patch("src.utils.asyncio.sleep", new_callable=AsyncMock):
        func = AsyncMock(side_effect=[KeyError("a"), KeyError("b"), "done"])
        sync_hook = MagicMock()

        assert await retry_async(func, max_attempts=3, on_retry=sync_hook) == "done"
        assert [c.args[1] for c in sync_hook.call_args_list] == [1, 2]

        func = AsyncMock(side_effect=[KeyError("a"), "done"])
        async_hook = AsyncMock()

        assert await retry_async(func, max_attempts=3, on_retry=async_hook) == "done"
        async_hook.assert_awaited_once()


# ===========================================================================
# is_transient_platform_error()
# ===========================================================================


def _wrapped(cause):
    try:
        raise TwitterAPIError("post failed", "twitter") from cause
    except TwitterAPIError as exc:
        return exc


def test_rate_limit_is_always_transient():
    error = PlatformRateLimitError("slow down", "twitter")
    assert is_transient_platform_error(error)
    assert is_transient_platform_error(error, request_unsent=True)


def test_credential_and_precondition_errors_are_fatal():
    assert not is_transient_platform_error(PlatformAuthError("bad token", "linkedin"))
    assert not is_transient_platform_error(PreconditionError("no user id"))


def test_network_failures_depend_on_delivery():
    timeout = _wrapped(httpx.ReadTimeout("no answer"))
    refused = _wrapped(httpx.ConnectError("refused"))

    assert is_transient_platform_error(timeout)
    assert not is_transient_platform_error(timeout, request_unsent=True)
    assert is_transient_platform_error(refused, request_unsent=True)


def test_api_error_without_network_cause_is_fatal():
    assert not is_transient_platform_error(TwitterAPIError("HTTP 400", "twitter"))


# ===========================================================================
# ensure_signature()
# ===========================================================================


def test_ensure_signature_appends_on_new_line():
    assert ensure_signature("Hello", "Sig") == "Hello\nSig"


def test_ensure_signature_is_idempotent():
    """Applying the signature twice yields it exactly once."""
    once = ensure_signature("Big launch today", "Made with Content Automation")
    twice = ensure_signature(once, "Made with Content Automation")
    assert twice == once
    assert twice.count("Made with Content Automation") == 1


def test_ensure_signature_presence_check_is_case_insensitive():
    text = "Post body\nMADE WITH CONTENT AUTOMATION"
    assert ensure_signature(text, "Made with Content Automation") == text


def test_ensure_signature_empty_signature_is_noop():
    assert ensure_signature("Hello", "") == "Hello"


# ===========================================================================
# Schedule date helpers
# ===========================================================================


@pytest.mark.parametrize(
    "slot,expected",
    [
        ("8:00 AM", (8, 0)),
        ("8:30 AM", (8, 30)),
        ("12:00 PM", (12, 0)),
        ("1:00 PM", (13, 0)),
        ("12:15 AM", (0, 15)),
        ("9:00 AM PST", (9, 0)),
    ],
)
def test_parse_time_slot(slot, expected):
    assert parse_time_slot(slot) == expected


@pytest.mark.parametrize("slot", ["", "nonsense", "25:00 AM", "8:75 PM"])
def test_parse_time_slot_rejects_invalid(slot):
    with pytest.raises(ValueError):
        parse_time_slot(slot)


def test_next_weekday_at_moves_forward_to_saturday(sample_utc_now):
    """2025-06-15 is a Sunday; the next Saturday is 2025-06-21."""
    result = next_weekday_at(SATURDAY, 8, 30, now=sample_utc_now)
    assert result == datetime(2025, 6, 21, 8, 30, tzinfo=timezone.utc)


def test_next_weekday_at_same_day_later_slot():
    now = datetime(2025, 6, 21, 7, 0, tzinfo=timezone.utc)
    assert next_weekday_at(SATURDAY, 8, 0, now=now) == datetime(
        2025, 6, 21, 8, 0, tzinfo=timezone.utc
    )


def test_next_weekday_at_same_day_past_slot_rolls_a_week():
    now = datetime(2025, 6, 21, 9, 0, tzinfo=timezone.utc)
    assert next_weekday_at(SATURDAY, 8, 0, now=now) == datetime(
        2025, 6, 28, 8, 0, tzinfo=timezone.utc
    )


def test_pick_schedule_date_is_future_saturday_in_allowed_slots(sample_utc_now):
    allowed = ["8:00 AM", "9:30 AM", "1:00 PM"]
    for seed in range(10):
        result = pick_schedule_date(allowed, now=sample_utc_now, rng=random.Random(seed))
        assert result > sample_utc_now
        assert result.weekday() == SATURDAY
        assert (result.hour, result.minute) in {(8, 0), (9, 30), (13, 0)}


def test_pick_schedule_date_requires_slots():
    with pytest.raises(ValueError):
        pick_schedule_date([])
