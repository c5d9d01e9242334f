# neighbourhood_chat/infrastructure/event_dispatcher.py
import logging
from collections import defaultdict
from collections.abc import Callable

from neighbourhood_chat.domain.events import Event

logger = logging.getLogger("neighbourhood_chat.events")


class EventDispatcher:
    """Runs post-commit handlers by event class name.

    A failing handler is logged and skipped; the remaining handlers still run
    and the caller never sees the exception.
    """

    def __init__(self) -> None:
        self.handlers: dict[str, list[Callable]] = defaultdict(list)

    def register(self, event_type: str, handler: Callable) -> None:
        self.handlers[event_type].append(handler)

    async def dispatch(self, event: Event) -> int:
        event_type = event.__class__.__name__
        failures = 0
        for handler in self.handlers[event_type]:
            try:
                await handler(event)
            except Exception:
                failures += 1
                logger.exception(
                    f"Handler {getattr(handler, '__qualname__', handler)!s} "
                    f"failed for {event_type}"
                )
        return failures
