import threading
import time
from typing import Callable, Dict, List

from fastapi import Request

from errors import AppError


class RateLimiter:
    """Per-key sliding window of hit timestamps.

    Instances are owned by the app (see main.py) and pruned by a background
    task, so a long-running process does not keep one bucket per IP forever.
    """

    def __init__(self, max_requests: int, window_seconds: float, message: str,
                 clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message
        self._clock = clock
        self._hits: Dict[str, List[float]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._hits)

    def check(self, key: str) -> None:
        now = self._clock()
        with self._lock:
            # drop old timestamps
            bucket = [t for t in self._hits.get(key, []) if now - t < self.window_seconds]
            if len(bucket) >= self.max_requests:
                self._hits[key] = bucket
                raise AppError(self.message, 429)
            bucket.append(now)
            self._hits[key] = bucket

    def prune(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [k for k, hits in self._hits.items() if not hits or now - hits[-1] >= self.window_seconds]
            for key in stale:
                del self._hits[key]
        return len(stale)


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def limit_by_ip(limiter_name: str):
    """Dependency enforcing the limiter stored as `app.state.<limiter_name>`."""

    def dependency(request: Request) -> None:
        limiter: RateLimiter = getattr(request.app.state, limiter_name)
        limiter.check(client_ip(request))

    return dependency
