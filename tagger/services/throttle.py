"""Login throttle: bounded failed attempts per key within a time window."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from tagger.errors import RateLimitedError

logger = logging.getLogger("tagger.auth")


@dataclass
class _Bucket:
    count: int
    reset_at: float


class LoginThrottle:
    """Fixed window counter per key. The window starts at the first counted attempt.

    Keys are the case-folded username, or the client address when no username
    was given. The lock is only held for dictionary updates, never across an await.
    """

    def __init__(
        self,
        window_seconds: float,
        max_attempts: int,
        skip_successful: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        if window_seconds <= 0 or max_attempts <= 0:
            raise ValueError("window_seconds and max_attempts must be positive")
        self.window_seconds = window_seconds
        self.max_attempts = max_attempts
        self.skip_successful = skip_successful
        self._clock = clock
        self._buckets: dict[str, _Bucket] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key_for(username: Optional[str], client_address: Optional[str] = None) -> str:
        name = (username or "").strip().casefold()
        if name:
            return f"user:{name}"
        return f"ip:{(client_address or '').strip() or 'unknown'}"

    def _live_bucket(self, key: str, now: float) -> Optional[_Bucket]:
        bucket = self._buckets.get(key)
        if bucket is not None and bucket.reset_at <= now:
            del self._buckets[key]
            return None
        return bucket

    def is_blocked(self, key: str) -> bool:
        with self._lock:
            bucket = self._live_bucket(key, self._clock())
            return bucket is not None and bucket.count >= self.max_attempts

    def retry_after(self, key: str) -> float:
        """Seconds until the key's window resets. 0 if there is no live window."""
        with self._lock:
            now = self._clock()
            bucket = self._live_bucket(key, now)
            return max(0.0, bucket.reset_at - now) if bucket else 0.0

    def hit(self, key: str) -> None:
        """Count an attempt before it is verified. Raises RateLimitedError at the limit.

        Checking and counting happen under one lock, so concurrent attempts on
        the same key cannot all pass before any of them is counted.
        """
        with self._lock:
            now = self._clock()
            bucket = self._live_bucket(key, now)
            if bucket is not None and bucket.count >= self.max_attempts:
                retry_after = max(0.0, bucket.reset_at - now)
                logger.warning("Login throttled for %s (retry in %.0fs)", key, retry_after)
                raise RateLimitedError(retry_after)
            if bucket is None:
                self._buckets[key] = _Bucket(count=1, reset_at=now + self.window_seconds)
            else:
                bucket.count += 1
            self._prune(now)

    def record_success(self, key: str) -> None:
        """Take back the count of a successful attempt when successes are skipped."""
        if not self.skip_successful:
            return
        with self._lock:
            bucket = self._live_bucket(key, self._clock())
            if bucket is not None and bucket.count > 0:
                bucket.count -= 1

    def _prune(self, now: float) -> None:
        expired = [k for k, b in self._buckets.items() if b.reset_at <= now]
        for k in expired:
            del self._buckets[k]
