# SPDX-FileCopyrightText: 2024 Swiss Confederation
#
# SPDX-License-Identifier: MIT

"""
Time as an injectable capability.
Every expiry decision (challenges, tokens, cache entries) asks a Clock
instead of the system, so tests can move time deterministically.
"""

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float:
        """Current time as unix epoch seconds."""
        ...


class SystemClock:
    def now(self) -> float:
        return time.time()


class FixedClock:
    """Clock standing still until moved with `advance` or `set`."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    def set(self, timestamp: float) -> None:
        self._now = timestamp
