from __future__ import annotations

import time
from typing import Callable, Dict, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window request limiter keyed by client address.

    ``max_requests`` <= 0 disables limiting. Counters live in process memory,
    so each worker enforces its own window. Expired windows are swept at most
    once per window, or sooner when more than ``max_clients`` are tracked.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        window_seconds: int = 15 * 60,
        max_requests: int = 100,
        max_clients: int = 10000,
        exempt_paths: Tuple[str, ...] = ("/health",),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(app)
        self._window = max(1, int(window_seconds))
        self._max = int(max_requests)
        self._max_clients = max(1, int(max_clients))
        self._exempt = exempt_paths
        self._clock = clock
        self._hits: Dict[str, Tuple[float, int]] = {}
        self._last_sweep = clock()

    def _client_key(self, request: Request) -> str:
        return request.client.host if request.client else "unknown"

    def _sweep(self, now: float) -> None:
        expired = [k for k, (started, _) in self._hits.items() if now - started >= self._window]
        for k in expired:
            del self._hits[k]
        self._last_sweep = now

    def tracked_clients(self) -> int:
        return len(self._hits)

    async def dispatch(self, request: Request, call_next):
        if self._max <= 0 or request.url.path in self._exempt:
            return await call_next(request)
        key = self._client_key(request)
        now = self._clock()
        if now - self._last_sweep >= self._window or len(self._hits) >= self._max_clients:
            self._sweep(now)
        started, count = self._hits.get(key, (now, 0))
        if now - started >= self._window:
            started, count = now, 0
        count += 1
        self._hits[key] = (started, count)
        if count > self._max:
            retry_after = max(1, int(self._window - (now - started)))
            return JSONResponse(
                status_code=429,
                content={"code": "RATE_LIMITED", "message": "Too many requests, try again later"},
                headers={"Retry-After": str(retry_after)},
            )
        return await call_next(request)
