import time
from collections import defaultdict
from typing import Callable
from fastapi import HTTPException
from starlette.requests import Request


class SimpleRateLimiter:
    """Sliding-window rate limiter; in-memory (per process). Caps upload and job-start requests per client IP.
    Why available: Uploads and conversions are expensive; one client should not be able to queue unbounded work."""

    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.time):
        """Configure limiter: max_requests per window_seconds per client IP."""
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self.storage = defaultdict(list)  # ip -> [timestamps]

    def check(self, request: Request):
        """Raise 429 if the client has exceeded the rate limit; otherwise record the request."""
        now = self.clock()
        ip = request.client.host if request.client else "unknown"

        # Remove expired timestamps
        self.storage[ip] = [
            t for t in self.storage[ip] if now - t < self.window_seconds
        ]

        if len(self.storage[ip]) >= self.max_requests:
            raise HTTPException(
                status_code=429,
                detail="Rate limit exceeded. Please retry later.",
            )

        self.storage[ip].append(now)

    def reset(self) -> None:
        self.storage.clear()
