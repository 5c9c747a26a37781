"""
Security middleware

Includes:
- Rate limiting
- Security headers
- Input validation
- Request ID tracking
"""
import re
import time
import uuid
import logging
from typing import Optional, Dict, Callable, Tuple
from collections import defaultdict

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.errors import ValidationError, error_response

logger = logging.getLogger("security-middleware")


# ============================================
# Rate Limiting
# ============================================

class RateLimiter:
    """In-memory rate limiter with sliding window, keyed by client address."""

    SWEEP_INTERVAL = 60

    def __init__(self, limit: int = 100, window: int = 900, trust_forwarded: bool = False):
        self.requests: Dict[str, list] = defaultdict(list)
        self.trust_forwarded = trust_forwarded
        self._last_sweep = 0.0
        self.config = {
            "default": {"limit": limit, "window": window},
            # LLM-heavy endpoints
            "/api/conversation-analytics/analyze": {"limit": 10, "window": 60},
            "/api/emotion-analytics/generate-report": {"limit": 10, "window": 60},
            "/api/emotion-conversations/generate-response": {"limit": 30, "window": 60},
        }

    def _get_identifier(self, request: Request) -> str:
        """Client IP. Client-supplied headers never pick the bucket unless a trusted proxy sets them."""
        if self.trust_forwarded:
            forwarded = request.headers.get("X-Forwarded-For")
            if forwarded:
                return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _get_config(self, path: str) -> Tuple[str, Dict[str, int]]:
        for endpoint, config in self.config.items():
            if endpoint != "default" and path.startswith(endpoint):
                return endpoint, config
        return "default", self.config["default"]

    def _sweep(self, now: float) -> None:
        """Forget identifiers with no request inside the longest window."""
        if now - self._last_sweep < self.SWEEP_INTERVAL:
            return
        self._last_sweep = now
        longest = max(c["window"] for c in self.config.values())
        stale = [key for key, times in self.requests.items() if not times or now - times[-1] >= longest]
        for key in stale:
            del self.requests[key]

    def is_allowed(self, request: Request) -> Tuple[bool, Dict[str, str]]:
        """Check if request is allowed under rate limits."""
        bucket, config = self._get_config(request.url.path)
        identifier = f"{self._get_identifier(request)}:{bucket}"

        limit = config["limit"]
        window = config["window"]
        now = time.time()
        self._sweep(now)

        recent = [t for t in self.requests.get(identifier, []) if now - t < window]

        request_count = len(recent)
        remaining = max(0, limit - request_count - 1)

        headers = {
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(int(now + window)),
        }

        if request_count >= limit:
            self.requests[identifier] = recent
            headers["Retry-After"] = str(window)
            return False, headers

        recent.append(now)
        self.requests[identifier] = recent
        return True, headers


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce rate limiting."""

    def __init__(self, app, limiter: Optional[RateLimiter] = None):
        super().__init__(app)
        self.limiter = limiter or RateLimiter()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in ["/health", "/", "/docs", "/openapi.json"]:
            return await call_next(request)

        allowed, headers = self.limiter.is_allowed(request)

        if not allowed:
            logger.warning(f"⚠️ Rate limit exceeded for {request.url.path}")
            return error_response(
                429,
                "Too many requests",
                "Too many requests from this client, please try again later.",
                headers=headers,
            )

        response = await call_next(request)
        for key, value in headers.items():
            response.headers[key] = value
        return response


# ============================================
# Security Headers
# ============================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'self'; frame-ancestors 'none';"
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )

        return response


# ============================================
# Input Validation
# ============================================

class InputValidator:
    """Validate user input."""

    UUID_PATTERN = re.compile(
        r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$',
        re.IGNORECASE
    )

    @classmethod
    def is_valid_uuid(cls, value: str) -> bool:
        """Check if value is a valid UUID."""
        if not value:
            return False
        return bool(cls.UUID_PATTERN.match(value))


def validate_uuid(value: str, field_name: str = "ID") -> str:
    """Validate UUID and raise ValidationError if invalid."""
    if not InputValidator.is_valid_uuid(value):
        raise ValidationError(f"Invalid {field_name} format. Must be a valid UUID.")
    return value


# ============================================
# Request ID Tracking
# ============================================

class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add a request ID to each request for tracing; reuses the caller's if sent."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
