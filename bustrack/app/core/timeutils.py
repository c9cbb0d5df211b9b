"""
Epoch-millisecond helpers.

Stored timestamps are milliseconds since the epoch, as dashboards expect.
"""

import time
from typing import Optional


def now_ms() -> int:
    return int(time.time() * 1000)


def format_time_since(timestamp: Optional[int], now: Optional[int] = None) -> str:
    """Human-readable age of a timestamp: "12 seconds ago", "3 minutes ago", "Never"."""
    if timestamp is None:
        return "Never"
    now = now_ms() if now is None else now
    seconds = max((now - timestamp) // 1000, 0)
    if seconds < 60:
        return f"{seconds} seconds ago"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes} minutes ago"
    return f"{minutes // 60} hours ago"
