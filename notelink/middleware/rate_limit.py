"""
Rate limiting using slowapi
"""
import os

from slowapi import Limiter
from slowapi.util import get_remote_address

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() in ("1", "true", "yes")
QUIZ_RATE_LIMIT = os.getenv("QUIZ_RATE_LIMIT", "10/minute")
AUTH_RATE_LIMIT = os.getenv("AUTH_RATE_LIMIT", "20/minute")

# Create limiter instance
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["1000/hour", "100/minute"],
    enabled=RATE_LIMIT_ENABLED,
)


def quiz_generation_limit():
    """Rate limit for quiz generation (the AI path costs money)"""
    return limiter.limit(QUIZ_RATE_LIMIT)


def auth_limit():
    """Rate limit for login and registration"""
    return limiter.limit(AUTH_RATE_LIMIT)
