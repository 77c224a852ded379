"""Simple in-memory rate limiter."""

from __future__ import annotations

import time
from collections import defaultdict, deque
from dataclasses import dataclass


@dataclass
class RateLimitRule:
    window_seconds: int
    max_events: int


class RateLimiter:
    def __init__(self) -> None:
        self._events: dict[str, deque[float]] = defaultdict(deque)

    def check(self, key: str, rule: RateLimitRule) -> bool:
        now = time.monotonic()
        events = self._events[key]
        while events and now - events[0] > rule.window_seconds:
            events.popleft()
        if len(events) >= rule.max_events:
            return False
        events.append(now)
        return True

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._events.clear()
        else:
            self._events.pop(key, None)


otp_limiter = RateLimiter()

__all__ = ["RateLimiter", "RateLimitRule", "otp_limiter"]
