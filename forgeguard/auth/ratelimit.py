"""
Login throttle.

Limits login attempts per (client IP, username) pair, independently of the
per-account lockout: the lockout protects one account from many sources,
this protects the endpoint from one source hammering many guesses.

Uses the `limits` library (the same engine slowapi runs on) with an
in-process moving window.
"""

from __future__ import annotations

import logging

from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from forgeguard.errors import RateLimitError

logger = logging.getLogger(__name__)


class LoginThrottle:
    """Moving-window limit on login attempts per (ip, username)."""

    def __init__(self, limit: str = "5/15minutes"):
        self.limit = parse(limit)
        self._storage = MemoryStorage()
        self._limiter = MovingWindowRateLimiter(self._storage)

    def hit(self, ip: str, username: str) -> None:
        """
        Count one attempt.

        Raises:
            RateLimitError: the pair has used up its attempts for the window
        """
        key = (ip or "unknown", username.strip().lower())
        if not self._limiter.hit(self.limit, "login", *key):
            logger.warning(f"Login throttled for {key[1]!r} from {key[0]}")
            raise RateLimitError()

    def reset(self) -> None:
        self._storage.reset()
