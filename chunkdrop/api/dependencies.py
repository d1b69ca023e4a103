import sys

from fastapi import Depends, Request
from fastapi_limiter.depends import RateLimiter

from ..services.session_registry import SessionRegistry


def get_session_registry(request: Request) -> SessionRegistry:
    """Return the registry the application was created with."""
    return request.app.state.session_registry


def get_rate_limit_dependency(times: int, seconds: int = 60):
    """
    Creates rate limiting dependency for session endpoints.

    Returns:
        list: List of FastAPI dependencies containing rate limiter if not in test environment,
              empty list otherwise.
    """
    if "pytest" not in sys.modules:
        return [Depends(RateLimiter(times=times, seconds=seconds))]
    return []
