"""
HTTP middlewares: request ids with access logging, and an in-memory rate limiter.

The limiter keeps a sliding window of timestamps per client in process memory,
so every worker counts on its own.
"""
import logging
import time
import uuid
from collections import defaultdict
from typing import Dict, List, Tuple

from fastapi import Request, status
from fastapi.responses import JSONResponse
from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware

from fabricpos.config import settings
from fabricpos.exceptions import error_body
from fabricpos.security import ACCESS, decode_token

logger = logging.getLogger("fabricpos.access")

REQUEST_ID_HEADER = "X-Request-Id"
EXEMPT_PATHS = ("/health", "/docs", "/redoc", "/openapi.json")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns a request id, logs method, path, status and duration."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({elapsed_ms:.1f} ms) [{request_id}]"
        )
        return response


class RateLimiter:
    """In-memory rate limiter with a sliding window."""

    CLEANUP_EVERY_SECONDS = 300

    def __init__(self, requests: int = 100, window: int = 60):
        self.requests = requests
        self.window = window
        self.clients: Dict[str, List[float]] = defaultdict(list)
        self.last_cleanup = time.time()

    def is_allowed(self, client_id: str, now: float = None) -> Tuple[bool, int]:
        """Record a hit for ``client_id``. Returns (allowed, remaining)."""
        now = time.time() if now is None else now
        if now - self.last_cleanup > self.CLEANUP_EVERY_SECONDS:
            self._cleanup(now)
            self.last_cleanup = now

        cutoff = now - self.window
        timestamps = [ts for ts in self.clients[client_id] if ts > cutoff]
        self.clients[client_id] = timestamps

        if len(timestamps) >= self.requests:
            return False, 0
        timestamps.append(now)
        return True, self.requests - len(timestamps)

    def retry_after(self, client_id: str, now: float = None) -> int:
        now = time.time() if now is None else now
        timestamps = self.clients.get(client_id)
        if not timestamps:
            return 0
        return max(1, int(timestamps[0] + self.window - now) + 1)

    def reset(self) -> None:
        self.clients.clear()

    def _cleanup(self, now: float) -> None:
        cutoff = now - self.window
        for client_id in list(self.clients.keys()):
            timestamps = [ts for ts in self.clients[client_id] if ts > cutoff]
            if timestamps:
                self.clients[client_id] = timestamps
            else:
                del self.clients[client_id]
        logger.debug(f"Rate limiter cleanup: {len(self.clients)} active clients")


rate_limiter = RateLimiter(requests=settings.RATE_LIMIT_REQUESTS, window=settings.RATE_LIMIT_WINDOW_SECONDS)


def client_key(request: Request) -> str:
    # authenticated callers are counted per user, anything else per IP
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        try:
            return f"user:{decode_token(auth_header[7:], ACCESS)['sub']}"
        except JWTError:
            logger.debug("Rate limiting an undecodable bearer token by IP")
    return f"ip:{request.client.host if request.client else 'unknown'}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limiter: RateLimiter = rate_limiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(self, request: Request, call_next):
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        client_id = client_key(request)
        allowed, remaining = self.limiter.is_allowed(client_id)
        limit_headers = {
            "X-RateLimit-Limit": str(self.limiter.requests),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Window": str(self.limiter.window),
        }

        if not allowed:
            retry_after = self.limiter.retry_after(client_id)
            logger.warning(f"Rate limit exceeded for {client_id} on {request.method} {request.url.path}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=error_body(request, f"Too many requests. Try again in {retry_after} seconds."),
                headers={"Retry-After": str(retry_after), **limit_headers},
            )

        response = await call_next(request)
        response.headers.update(limit_headers)
        return response
