import threading
import time
import uuid
from collections import defaultdict
from typing import Dict, List, Optional

import redis
from loguru import logger


class RateLimiter:
    """Sliding-window request counter keyed by identity.

    Backed by Redis when a reachable REDIS_URL is configured, so every
    instance shares the same windows. Without Redis it keeps windows in
    process memory: per instance only, and reset on restart.
    """

    def __init__(self, redis_url: Optional[str] = None):
        self.r = None
        self._windows: Dict[str, List[float]] = defaultdict(list)
        self._lock = threading.Lock()

        if not redis_url:
            logger.info("No REDIS_URL configured, rate limiting in process memory")
            return

        try:
            self.r = redis.from_url(redis_url)
            self.r.ping()
            logger.info("Redis connection established for rate limiting")
        except Exception as e:
            logger.error(f"Redis connection failed: {e}")
            # Fallback to in-memory windows (single instance only)
            self.r = None

    def check(self, key: str, max_requests: int, window_ms: int) -> bool:
        """
        Count this request against `key` and decide whether it may proceed.

        Args:
            key: Identity the limit applies to (e.g. "contact:<email>")
            max_requests: Requests allowed inside the window
            window_ms: Window length in milliseconds

        Returns:
            True if the request is within the limit, False if it is rate limited
        """
        now_ms = time.time() * 1000

        if self.r:
            try:
                return self._check_redis(key, max_requests, window_ms, now_ms)
            except Exception as e:
                logger.error(f"Rate limit check failed: {e}")
                # Fail open - the limiter is best effort
                return True

        return self._check_memory(key, max_requests, window_ms, now_ms)

    def _check_memory(self, key: str, max_requests: int, window_ms: int, now_ms: float) -> bool:
        cutoff = now_ms - window_ms
        with self._lock:
            timestamps = [t for t in self._windows[key] if t > cutoff]
            timestamps.append(now_ms)
            self._windows[key] = timestamps
            return len(timestamps) <= max_requests

    def _check_redis(self, key: str, max_requests: int, window_ms: int, now_ms: float) -> bool:
        name = f"ratelimit:{key}"
        pipe = self.r.pipeline()
        pipe.zremrangebyscore(name, 0, now_ms - window_ms)
        pipe.zadd(name, {f"{now_ms}:{uuid.uuid4().hex}": now_ms})
        pipe.zcard(name)
        pipe.pexpire(name, window_ms)
        _, _, count, _ = pipe.execute()
        return count <= max_requests

    def reset(self, key: str) -> None:
        """Forget a key's window (for testing/debugging)."""
        try:
            if self.r:
                self.r.delete(f"ratelimit:{key}")
        except Exception as e:
            logger.error(f"Failed to reset rate limit key: {e}")
        with self._lock:
            self._windows.pop(key, None)
