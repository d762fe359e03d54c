"""In-memory sliding-window rate limiting for the auth and admin endpoints."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Deque

from fastapi import Request, Response

from app.core.config import settings
from app.core.deps import client_info
from app.core.exceptions import RateLimitExceeded


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int
    retry_after: int = 0


class SlidingWindowLimiter:
    """Counts hits per key inside a moving window; state is per process."""

    def __init__(self) -> None:
        self._hits: dict[str, Deque[float]] = {}
        self._lock = Lock()

    def hit(self, key: str, *, limit: int, window_seconds: int, now: float | None = None) -> RateDecision:
        if limit <= 0:
            return RateDecision(allowed=True, remaining=0)
        current = time.monotonic() if now is None else now
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= current - window_seconds:
                hits.popleft()
            if len(hits) >= limit:
                return RateDecision(
                    allowed=False,
                    remaining=0,
                    retry_after=max(int(hits[0] + window_seconds - current), 1),
                )
            hits.append(current)
            return RateDecision(allowed=True, remaining=limit - len(hits))

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


limiter = SlidingWindowLimiter()


def _scope_limit(scope: str) -> int:
    if scope == "auth":
        return settings.RATE_LIMIT_AUTH_MAX_REQUESTS
    return settings.RATE_LIMIT_MAX_REQUESTS


def rate_limit(scope: str = "default"):
    """Dependency limiting one client IP within ``scope``."""

    def _dependency(request: Request, response: Response) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return
        limit = _scope_limit(scope)
        ip = client_info(request).ip_address or "unknown"
        decision = limiter.hit(f"{scope}:{ip}", limit=limit, window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS)
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        if not decision.allowed:
            raise RateLimitExceeded(
                retry_after=decision.retry_after,
                limit=limit,
                window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
            )

    return _dependency
