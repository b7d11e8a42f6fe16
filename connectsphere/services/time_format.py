"""Compact relative timestamps for list rows."""
from __future__ import annotations

import time

_UNITS = (
    (7 * 86_400_000, "w"),
    (86_400_000, "d"),
    (3_600_000, "h"),
    (60_000, "m"),
)


def format_time_ago(timestamp_ms: int, now_ms: int | None = None) -> str:
    now = int(time.time() * 1000) if now_ms is None else now_ms
    elapsed = max(0, now - timestamp_ms)
    for size, suffix in _UNITS:
        if elapsed >= size:
            return f"{elapsed // size}{suffix}"
    return "now"


__all__ = ["format_time_ago"]
