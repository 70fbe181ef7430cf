"""
siteaudit/middleware/rate_limit.py: sliding-window per-IP rate limiter.
Only applies to POST /report-request. Window and limit come from settings
(RATE_LIMIT_REQUESTS per RATE_LIMIT_WINDOW_SECONDS).
"""
import time
from collections import defaultdict, deque
from typing import Callable
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from ..config import get_settings

_log: dict[str, deque] = defaultdict(deque)
LIMITED = {"/report-request"}


def _ip(request: Request) -> str:
    fwd = request.headers.get("X-Forwarded-For")
    if fwd:
        return fwd.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def reset() -> None:
    _log.clear()


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method == "POST" and request.url.path in LIMITED:
            settings = get_settings()
            limit, window = settings.rate_limit_requests, settings.rate_limit_window_seconds
            ip = _ip(request)
            now = time.monotonic()
            q = _log[ip]
            while q and now - q[0] > window:
                q.popleft()
            if len(q) >= limit:
                retry = int(window - (now - q[0])) + 1
                return JSONResponse(
                    status_code=429,
                    content={"detail": "Too many requests. Please wait a few minutes.", "retry_after_seconds": retry},
                    headers={"Retry-After": str(retry)},
                )
            q.append(now)
        return await call_next(request)
