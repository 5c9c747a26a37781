"""
Middleware package for the MoodPulse backend.
"""
from .security import (
    RateLimiter,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
    RequestIDMiddleware,
    InputValidator,
    validate_uuid,
)

__all__ = [
    "RateLimiter",
    "RateLimitMiddleware",
    "SecurityHeadersMiddleware",
    "RequestIDMiddleware",
    "InputValidator",
    "validate_uuid",
]
