"""Clock abstraction so cooldowns and time windows can be driven in tests."""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    """Anything that returns the current time as epoch milliseconds."""

    def now_ms(self) -> int: ...


class SystemClock:
    """Wall-clock time in epoch milliseconds."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)
