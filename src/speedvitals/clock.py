# Copyright (c) Syntropy Systems
"""Time source used by the poller, swappable in tests."""
from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    """Clock backed by the real wall clock."""

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)
