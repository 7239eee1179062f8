"""
Shared utility functions used throughout the content-publishing engine.

Provides:
    - utc_now(): Timezone-aware UTC datetime
    - generate_id(): UUID4 string generator (run identifiers)
    - ensure_utc(dt): Convert any datetime to timezone-aware UTC
    - @with_retry / retry_async(): Bounded retry with a fixed delay
    - is_transient_platform_error(): Retry classification for platform calls
    - ensure_signature(): Idempotent attribution signature
    - next_weekday_at() / pick_schedule_date(): Publish-time computation
"""

from datetime import datetime, timedelta, timezone
import uuid
import asyncio
import logging
import random
import time as time_module
from functools import wraps
from typing import (
    Any,
    Awaitable,
    Callable,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
)

import httpx

from src.exceptions import (
    PlatformAuthError,
    PlatformRateLimitError,
    PreconditionError,
    RetryExhaustedError,
)

# ---------------------------------------------------------------------------
# Type variable for generic return types in the retry decorator
# ---------------------------------------------------------------------------
T = TypeVar("T")


# ===========================================================================
# TIMEZONE UTILITIES
# ===========================================================================


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime in UTC.
    """
    return datetime.now(timezone.utc)


def generate_id() -> str:
    """
    Generate a unique identifier for a pipeline run.

    Returns:
        A unique UUID4 string.
    """
    return str(uuid.uuid4())


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure a datetime is timezone-aware in UTC.

    Args:
        dt: Datetime to convert (naive or aware).

    Returns:
        Timezone-aware datetime in UTC.
    """
    if dt.tzinfo is None:
        # Assume naive datetime is UTC
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ===========================================================================
# BOUNDED RETRY WITH FIXED DELAY
# Attempts are strictly sequential. Errors the caller classifies as fatal
# propagate immediately; retryable errors are retried until the budget is
# spent, then RetryExhaustedError is raised.
# ===========================================================================


def _should_retry(
    exc: Exception,
    retryable_exceptions: Tuple[Type[Exception], ...],
    retry_if: Optional[Callable[[Exception], bool]],
) -> bool:
    if not isinstance(exc, retryable_exceptions):
        return False
    if retry_if is not None and not retry_if(exc):
        return False
    return True


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = 3,
    delay: float = 2.0,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    retry_if: Optional[Callable[[Exception], bool]] = None,
    on_retry: Optional[Callable[[Exception, int], Any]] = None,
    operation_name: Optional[str] = None,
    **kwargs: Any,
) -> T:
    """
    Call ``await func(*args, **kwargs)`` with bounded, fixed-delay retry.

    Args:
        func: Coroutine function to call.
        max_attempts: Total attempt budget (first call included).
        delay: Seconds to sleep between attempts (constant, not exponential).
        retryable_exceptions: Exception types that may be retried. Anything
            else propagates immediately.
        retry_if: Optional predicate for finer classification. Returning
            ``False`` marks the error as fatal and re-raises it unchanged.
        on_retry: Optional hook called as ``on_retry(exc, attempt)`` before
            sleeping. May be a coroutine function.
        operation_name: Name used in log messages. Defaults to
            ``func.__name__``.

    Returns:
        Whatever *func* returns on the first successful attempt.

    Raises:
        RetryExhaustedError: When every attempt failed with a retryable
            error. ``last_error`` holds the final exception.
    """
    op_name = operation_name or getattr(func, "__name__", "operation")
    last_error: Optional[Exception] = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not _should_retry(e, retryable_exceptions, retry_if):
                raise
            last_error = e
            if attempt < max_attempts:
                logging.warning(
                    "[RETRY] %s attempt %d/%d failed: %s. "
                    "Retrying in %.1fs...",
                    op_name,
                    attempt,
                    max_attempts,
                    e,
                    delay,
                )
                if on_retry is not None:
                    hook_result = on_retry(e, attempt)
                    if asyncio.iscoroutine(hook_result):
                        await hook_result
                await asyncio.sleep(delay)
            else:
                logging.error(
                    "[RETRY EXHAUSTED] %s failed after %d attempts: %s",
                    op_name,
                    max_attempts,
                    e,
                )

    raise RetryExhaustedError(
        op_name, max_attempts, last_error  # type: ignore[arg-type]
    ) from last_error


def with_retry(
    max_attempts: int = 3,
    delay: float = 2.0,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    retry_if: Optional[Callable[[Exception], bool]] = None,
    operation_name: Optional[str] = None,
) -> Callable:
    """
    Decorator form of the bounded fixed-delay retry.

    Works with both synchronous and asynchronous functions. The decorator
    detects whether the wrapped function is a coroutine and applies the
    matching wrapper.

    Args:
        max_attempts: Maximum number of attempts (default ``3``).
        delay: Constant delay in seconds between attempts (default ``2.0``).
        retryable_exceptions: Exception types that trigger a retry. Any
            exception **not** in this tuple propagates immediately.
        retry_if: Optional predicate; ``False`` makes the error fatal.
        operation_name: Human-readable name used in log messages. If
            ``None``, the wrapped function's ``__name__`` is used.

    Raises:
        RetryExhaustedError: When all retry attempts have been exhausted.

    Usage::

        @with_retry(max_attempts=3, delay=1.0)
        async def search(query: str) -> dict:
            ...

        @with_retry(
            max_attempts=2,
            retryable_exceptions=(httpx.HTTPError,),
            retry_if=lambda exc: not is_auth_failure(exc),
        )
        def fetch(url: str) -> bytes:
            ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        op_name = operation_name or func.__name__

        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry_async(
                func,
                *args,
                max_attempts=max_attempts,
                delay=delay,
                retryable_exceptions=retryable_exceptions,
                retry_if=retry_if,
                operation_name=op_name,
                **kwargs,
            )

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> T:
            last_error: Optional[Exception] = None
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if not _should_retry(e, retryable_exceptions, retry_if):
                        raise
                    last_error = e
                    if attempt < max_attempts:
                        logging.warning(
                            "[RETRY] %s attempt %d/%d failed: %s. "
                            "Retrying in %.1fs...",
                            op_name,
                            attempt,
                            max_attempts,
                            e,
                            delay,
                        )
                        time_module.sleep(delay)
                    else:
                        logging.error(
                            "[RETRY EXHAUSTED] %s failed after %d attempts: %s",
                            op_name,
                            max_attempts,
                            e,
                        )
            raise RetryExhaustedError(
                op_name, max_attempts, last_error  # type: ignore[arg-type]
            ) from last_error

        # Return appropriate wrapper based on function type
        if asyncio.iscoroutinefunction(func):
            return async_wrapper  # type: ignore[return-value]
        return sync_wrapper  # type: ignore[return-value]

    return decorator


def is_transient_platform_error(exc: Exception, request_unsent: bool = False) -> bool:
    """
    Decide whether a failed platform call may be attempted again.

    Rate limits are always transient. Network failures count only when the
    adapter chained an ``httpx`` transport error as the cause. With
    *request_unsent* only connection failures qualify, because the server
    never saw the request and resending cannot publish twice. Credential
    and precondition errors are never transient.
    """
    if isinstance(exc, (PlatformAuthError, PreconditionError)):
        return False
    if isinstance(exc, PlatformRateLimitError):
        return True
    network = (httpx.ConnectError, httpx.ConnectTimeout) if request_unsent else httpx.TransportError
    return isinstance(exc.__cause__, network)


# ===========================================================================
# ATTRIBUTION SIGNATURE
# ===========================================================================

DEFAULT_SIGNATURE = "Made with Content Automation"


def ensure_signature(text: str, signature: str = DEFAULT_SIGNATURE) -> str:
    """
    Append *signature* on a new line unless it is already present.

    The presence check is a case-insensitive substring match, so applying
    this function any number of times yields the signature exactly once.
    """
    if not signature:
        return text
    if signature.lower() in text.lower():
        return text
    return f"{text}\n{signature}"


# ===========================================================================
# SCHEDULE DATE
# ===========================================================================

SATURDAY = 5


def parse_time_slot(slot: str) -> Tuple[int, int]:
    """
    Parse a ``"H:MM AM"`` / ``"HH:MM PM"`` slot into a 24-hour pair.

    Args:
        slot: Time-of-day string. A trailing timezone label
            (``"8:00 AM PST"``) is ignored.

    Returns:
        ``(hour, minute)`` in 24-hour time.

    Raises:
        ValueError: If the slot cannot be parsed.
    """
    parts = slot.strip().split()
    if not parts:
        raise ValueError(f"Empty time slot: {slot!r}")
    hour_str, _, minute_str = parts[0].partition(":")
    hour = int(hour_str)
    minute = int(minute_str or 0)
    meridiem = parts[1].upper() if len(parts) > 1 else ""
    if meridiem == "PM" and hour != 12:
        hour += 12
    elif meridiem == "AM" and hour == 12:
        hour = 0
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Invalid time slot: {slot!r}")
    return hour, minute


def next_weekday_at(
    weekday: int,
    hour: int,
    minute: int,
    now: Optional[datetime] = None,
) -> datetime:
    """
    Return the next occurrence of *weekday* at ``hour:minute`` after *now*.

    Args:
        weekday: Target weekday (Monday is ``0``, Saturday is ``5``).
        hour: Hour of day (0-23).
        minute: Minute (0-59).
        now: Reference time. Defaults to :func:`utc_now`.

    Returns:
        Timezone-aware datetime strictly later than *now*.
    """
    now = ensure_utc(now) if now is not None else utc_now()
    days_ahead = (weekday - now.weekday()) % 7
    candidate = (now + timedelta(days=days_ahead)).replace(
        hour=hour, minute=minute, second=0, microsecond=0
    )
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate


def pick_schedule_date(
    allowed_times: Sequence[str],
    weekday: int = SATURDAY,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> datetime:
    """Pick a random allowed slot and anchor it to the next *weekday*."""
    if not allowed_times:
        raise ValueError("allowed_times must not be empty")
    chooser = rng or random
    hour, minute = parse_time_slot(chooser.choice(list(allowed_times)))
    return next_weekday_at(weekday, hour, minute, now=now)
