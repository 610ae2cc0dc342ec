"""Optional API-key auth middleware.

When FULFILLMENT_API_KEY is set, every ``/api/`` request except health
checks must carry it in ``X-API-Key``. Repeated failures from one client
are rate limited in-process.
"""

from __future__ import annotations

import hmac
import logging
import os
import threading
import time

from fastapi import Request
from fastapi.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

API_KEY_ENV = "FULFILLMENT_API_KEY"
TRUST_PROXY_ENV = "FULFILLMENT_TRUST_PROXY"

_PUBLIC_PATHS = (
    "/health",
    "/api/v1/health",
    "/docs",
    "/redoc",
    "/openapi.json",
)

_MIN_API_KEY_LENGTH = 32


class AuthFailureLimiter:
    """Sliding-window count of auth failures per client IP."""

    def __init__(self, max_failures: int = 10, window_seconds: float = 300) -> None:
        self.max_failures = max_failures
        self.window_seconds = window_seconds
        self._failures: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def is_limited(self, client_ip: str) -> bool:
        with self._lock:
            now = time.monotonic()
            recent = [
                t for t in self._failures.get(client_ip, []) if now - t < self.window_seconds
            ]
            self._failures[client_ip] = recent
            return len(recent) >= self.max_failures

    def record(self, client_ip: str) -> None:
        with self._lock:
            self._failures.setdefault(client_ip, []).append(time.monotonic())

    def reset(self) -> None:
        with self._lock:
            self._failures.clear()


limiter = AuthFailureLimiter()


def reset_rate_limiter() -> None:
    """Reset the rate limiter state. Used by tests."""
    limiter.reset()


def _trust_proxy() -> bool:
    return os.environ.get(TRUST_PROXY_ENV, "").strip().lower() in ("1", "true")


def _get_client_ip(request: Request) -> str:
    """Client IP; X-Forwarded-For is honoured only behind a trusted proxy."""
    if _trust_proxy():
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def get_expected_api_key() -> str:
    """Return configured API key; empty string means auth disabled."""
    return os.environ.get(API_KEY_ENV, "").strip()


def validate_api_key_strength() -> None:
    """Reject a configured key shorter than 32 characters.

    Raises:
        ValueError: If the key is set but too short.
    """
    key = get_expected_api_key()
    if key and len(key) < _MIN_API_KEY_LENGTH:
        raise ValueError(
            f"{API_KEY_ENV} is too short ({len(key)} chars). "
            f"Minimum length is {_MIN_API_KEY_LENGTH} characters."
        )


def should_authenticate(path: str) -> bool:
    """Return True when this path should be protected by API-key auth."""
    if path.startswith(_PUBLIC_PATHS):
        return False
    return path.startswith("/api/")


async def maybe_require_api_key(request: Request, call_next) -> Response:
    """FastAPI middleware entrypoint for optional API-key auth."""
    if request.method.upper() == "OPTIONS":
        return await call_next(request)

    expected_key = get_expected_api_key()
    if not expected_key or not should_authenticate(request.url.path):
        return await call_next(request)

    client_ip = _get_client_ip(request)
    if limiter.is_limited(client_ip):
        logger.warning("Auth rate limit exceeded for IP %s", client_ip)
        return JSONResponse(
            status_code=429,
            content={"detail": "Too many authentication failures. Try again later."},
        )

    provided_key = request.headers.get("X-API-Key", "")
    if not provided_key or not hmac.compare_digest(provided_key, expected_key):
        limiter.record(client_ip)
        return JSONResponse(
            status_code=401,
            content={"detail": "Invalid or missing API key"},
        )
    return await call_next(request)
