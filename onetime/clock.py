"""Logical timestamps: unix time in milliseconds."""

import time
from typing import Callable

Clock = Callable[[], int]


def unix_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


def fixed_clock(value: int) -> Clock:
    """Clock that always returns value (tests)."""
    return lambda: value
