# neighbourhood_chat/gateways/base.py
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from neighbourhood_chat.infrastructure.db_wrapper import (
    NO_RETRY,
    QuerySettings,
    RetryOptions,
    execute_query,
)
from neighbourhood_chat.infrastructure.uow import UnitOfWork

T = TypeVar("T")

# Retry policies per kind of storage call
MEMBERSHIP_RETRY = RetryOptions(retries=2, initial_delay_ms=500)
USER_LOOKUP_RETRY = RetryOptions(retries=2, initial_delay_ms=300)
LOOKUP_RETRY = RetryOptions(retries=1, initial_delay_ms=200)
WRITE_RETRY = RetryOptions(retries=2, initial_delay_ms=500)
FETCH_RETRY = RetryOptions(retries=3, initial_delay_ms=1000)
LIST_RETRY = RetryOptions(retries=2, initial_delay_ms=500)


class SqlGateway:
    def __init__(
        self,
        session: AsyncSession,
        uow: UnitOfWork,
        settings: QuerySettings | None = None,
    ):
        self.session = session
        self.uow = uow
        self.settings = settings or QuerySettings()

    async def _read(
        self,
        operation: Callable[[], Awaitable[T]],
        name: str,
        timeout: float | None = None,
        retry: RetryOptions = NO_RETRY,
        **metadata: Any,
    ) -> T:
        return await execute_query(
            operation,
            operation_name=name,
            timeout=timeout or self.settings.query_timeout,
            retry=retry,
            slow_threshold_ms=self.settings.slow_query_ms,
            metadata=metadata,
        )

    async def _write(
        self,
        operation: Callable[[], Awaitable[T]],
        name: str,
        timeout: float | None = None,
        retry: RetryOptions = NO_RETRY,
        **metadata: Any,
    ) -> T:
        return await execute_query(
            operation,
            operation_name=name,
            timeout=timeout or self.settings.write_timeout,
            retry=retry,
            slow_threshold_ms=self.settings.slow_query_ms,
            session=self.session,
            metadata=metadata,
        )
