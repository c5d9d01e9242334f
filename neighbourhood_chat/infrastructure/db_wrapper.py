# neighbourhood_chat/infrastructure/db_wrapper.py
"""Timeouts, classified retries and slow-query logging for storage calls.

Every gateway call that touches the database goes through :func:`execute_query`.
The wrapped operation is a zero-argument coroutine factory so it can be
re-invoked on retry::

    group = await execute_query(
        lambda: self.session.scalar(stmt),
        operation_name="checkGroupMembership",
        timeout=10.0,
        retry=RetryOptions(retries=2, initial_delay_ms=500),
    )
"""
import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from neighbourhood_chat.infrastructure.errors import (
    NEVER_RETRY,
    ChatError,
    ErrorCategory,
    enhance_error,
)

logger = logging.getLogger("neighbourhood_chat.db")

T = TypeVar("T")


@dataclass
class RetryOptions:
    retries: int = 0
    initial_delay_ms: float = 500
    max_delay_ms: float = 5000
    backoff_factor: float = 2.0
    jitter: bool = True
    should_retry: Callable[[ChatError], bool] | None = None


NO_RETRY = RetryOptions()


@dataclass(frozen=True)
class QuerySettings:
    query_timeout: float = 10.0
    write_timeout: float = 10.0
    slow_query_ms: float = 1000

    @classmethod
    def from_config(cls, config) -> "QuerySettings":
        return cls(
            query_timeout=config.DB_QUERY_TIMEOUT,
            write_timeout=config.DB_WRITE_TIMEOUT,
            slow_query_ms=config.DB_SLOW_QUERY_MS,
        )


def backoff_delay_ms(options: RetryOptions, attempt: int) -> float:
    """Delay before retry number ``attempt`` (1-based), with ±25% jitter."""
    base = min(
        options.initial_delay_ms * (options.backoff_factor ** (attempt - 1)),
        options.max_delay_ms,
    )
    if options.jitter:
        base *= 1.0 + random.uniform(-0.25, 0.25)
    return base


def should_retry(error: ChatError, options: RetryOptions) -> bool:
    if error.category in NEVER_RETRY:
        return False
    if error.category == ErrorCategory.BUSINESS_LOGIC:
        return bool(options.should_retry and options.should_retry(error))
    if not error.retryable:
        return False
    if options.should_retry is not None:
        return options.should_retry(error)
    return True


async def execute_query(
    operation: Callable[[], Awaitable[T]],
    *,
    operation_name: str,
    timeout: float = 10.0,
    retry: RetryOptions = NO_RETRY,
    slow_threshold_ms: float = 1000,
    session: AsyncSession | None = None,
    metadata: dict[str, Any] | None = None,
) -> T:
    """Run ``operation`` with a hard timeout and classified retries.

    Any failure surfaces as a :class:`ChatError`. When ``session`` is given it
    is rolled back after a failed attempt so the next attempt starts clean.
    """
    metadata = metadata or {}
    attempts = retry.retries + 1

    for attempt in range(1, attempts + 1):
        started = time.perf_counter()
        try:
            result = await asyncio.wait_for(operation(), timeout=timeout)
        except Exception as exc:
            if isinstance(exc, asyncio.TimeoutError):
                error = ChatError(
                    f"{operation_name} timed out after {timeout:.1f}s",
                    code="DATABASE_TIMEOUT",
                    category=ErrorCategory.CONNECTION,
                    retryable=True,
                    metadata={**metadata, "operation": operation_name},
                    cause=exc,
                )
            else:
                error = enhance_error(exc)
                error.metadata.setdefault("operation", operation_name)

            if session is not None:
                await session.rollback()

            if attempt < attempts and should_retry(error, retry):
                delay_ms = backoff_delay_ms(retry, attempt)
                logger.warning(
                    f"Retry attempt {attempt}/{retry.retries} for {operation_name} "
                    f"after {error.code}: {error.message}. "
                    f"Waiting {delay_ms / 1000:.2f}s before retry."
                )
                await asyncio.sleep(delay_ms / 1000)
                continue

            if attempt > 1:
                logger.warning(
                    f"{operation_name} failed after {attempt} attempts: {error.code}"
                )
            if error is exc:
                raise
            raise error from exc

        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms > slow_threshold_ms:
            logger.warning(
                f"Slow query {operation_name}: {elapsed_ms:.0f}ms "
                f"(threshold {slow_threshold_ms:.0f}ms) {metadata}"
            )
        else:
            logger.debug(f"{operation_name} completed in {elapsed_ms:.0f}ms")
        return result

    raise RuntimeError(f"{operation_name} exhausted retries without a result")
