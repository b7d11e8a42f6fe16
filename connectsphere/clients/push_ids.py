"""Time-ordered record keys in the style of hosted realtime databases.

Keys are 20 characters: 8 encode the millisecond timestamp, 12 are random.
Within one millisecond the random part is incremented so keys generated by a
single writer stay strictly increasing.
"""
from __future__ import annotations

import secrets
import threading
import time

PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"

_lock = threading.Lock()
_last_push_time = 0
_last_rand_chars: list[int] = [0] * 12


def generate_push_id(now_ms: int | None = None) -> str:
    global _last_push_time
    now = int(time.time() * 1000) if now_ms is None else now_ms
    with _lock:
        duplicate_time = now == _last_push_time
        _last_push_time = now

        time_chars = []
        for _ in range(8):
            time_chars.append(PUSH_CHARS[now % 64])
            now //= 64
        time_chars.reverse()

        if not duplicate_time:
            for index in range(12):
                _last_rand_chars[index] = secrets.randbelow(64)
        else:
            index = 11
            while index >= 0 and _last_rand_chars[index] == 63:
                _last_rand_chars[index] = 0
                index -= 1
            if index >= 0:
                _last_rand_chars[index] += 1

        return "".join(time_chars) + "".join(PUSH_CHARS[value] for value in _last_rand_chars)


__all__ = ["PUSH_CHARS", "generate_push_id"]
