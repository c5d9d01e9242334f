# neighbourhood_chat/domain/identifiers.py
import itertools
import random
import re
import secrets
import time
from datetime import UTC, datetime, timedelta

ID_PATTERN = re.compile(r"^[0-9a-f]{24}$")

_PROCESS_UNIQUE = secrets.token_bytes(5)
_counter = itertools.count(random.randint(0, 0xFFFFFF))


def new_id() -> str:
    """Return a 96-bit identifier as 24 hex characters.

    Layout: 4 bytes of epoch seconds, 5 process-unique random bytes and a
    3 byte rolling counter, so ids generated in one process sort by creation.
    """
    seconds = int(time.time()) & 0xFFFFFFFF
    count = next(_counter) & 0xFFFFFF
    raw = seconds.to_bytes(4, "big") + _PROCESS_UNIQUE + count.to_bytes(3, "big")
    return raw.hex()


def is_valid_id(value) -> bool:
    return isinstance(value, str) and ID_PATTERN.fullmatch(value) is not None


class MonotonicClock:
    """UTC wall clock that never goes backwards within a process.

    Two readings taken in the same microsecond are separated by one
    microsecond so ``createdAt`` can order messages without ties.
    """

    def __init__(self) -> None:
        self._last: datetime | None = None

    def now(self) -> datetime:
        current = datetime.now(UTC)
        if self._last is not None and current <= self._last:
            current = self._last + timedelta(microseconds=1)
        self._last = current
        return current


clock = MonotonicClock()


def utcnow() -> datetime:
    return clock.now()
