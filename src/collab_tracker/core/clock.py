# src/collab_tracker/core/clock.py

from __future__ import annotations

"""
Time source.

All timestamps are integer epoch milliseconds. Calendar days are UTC days:
every path that asks "is this today?" goes through utc_day_start_ms so that
selection writes and reads always agree on where midnight is.
"""

import time
from datetime import datetime, timezone
from typing import Protocol

DAY_MS = 24 * 60 * 60 * 1000


class Clock(Protocol):
    def now_ms(self) -> int: ...


class SystemClock:
    """Wall clock (UTC epoch milliseconds)."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)


def utc_day_start_ms(ts_ms: int) -> int:
    """Truncate an epoch-ms timestamp to 00:00 UTC of the same day."""
    return (int(ts_ms) // DAY_MS) * DAY_MS


def same_utc_day(a_ms: int, b_ms: int) -> bool:
    return utc_day_start_ms(a_ms) == utc_day_start_ms(b_ms)


def format_ms(ts_ms: int | None) -> str:
    if ts_ms is None:
        return "-"
    dt = datetime.fromtimestamp(int(ts_ms) / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%d %H:%M:%S UTC")
