# neighbourhood_chat/interactors/conflicts.py
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from neighbourhood_chat.infrastructure.errors import ChatError

logger = logging.getLogger("neighbourhood_chat.conflicts")

T = TypeVar("T")

MAX_CONFLICT_ATTEMPTS = 3


async def apply_with_reload(
    apply: Callable[[], Awaitable[T]],
    reload: Callable[[], Awaitable[object]],
    operation: str,
    attempts: int = MAX_CONFLICT_ATTEMPTS,
) -> T:
    """Run a versioned update, reloading and re-applying it after a lost race.

    ``apply`` must recompute its change from the current state of the record,
    so a reload followed by another call gives the right result. After
    ``attempts`` conflicts the last ``CONCURRENT_MODIFICATION`` error
    propagates.
    """
    for attempt in range(1, attempts + 1):
        try:
            return await apply()
        except ChatError as e:
            if e.code != "CONCURRENT_MODIFICATION" or attempt == attempts:
                raise
            logger.info(f"{operation} lost a concurrent update, reloading (attempt {attempt})")
            await reload()
    raise RuntimeError(f"{operation} gave up without a result")
