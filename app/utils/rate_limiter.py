"""
Rate limiting for the public, unauthenticated endpoints.

Uses slowapi with limits keyed on the client IP:
- Contract submission: 10 per minute per IP
- Contact form: 5 per minute per IP
- Login: 5 per minute per IP
- Forgot password / OTP: 3 per minute per IP

Usage:
    from app.utils.rate_limiter import limiter, RateLimits

    @router.post("/my-endpoint")
    @limiter.limit(RateLimits.CONTACT)
    async def my_endpoint(request: Request):
        pass

Note: The `request: Request` parameter is REQUIRED for rate-limited endpoints.
"""
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from fastapi import Request
import logging

from app.config import settings
from app.utils.responses import error_response

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """
    Get the client IP address from the request.
    Handles cases where the app is behind a proxy/load balancer.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For can contain multiple IPs, take the first one
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return get_remote_address(request)


limiter = Limiter(key_func=get_client_ip, enabled=settings.rate_limit_enabled)


class RateLimits:
    CONTRACT_SUBMIT = "10/minute"
    CONTACT = "5/minute"
    LOGIN = "5/minute"
    FORGOT_PASSWORD = "3/minute"


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """Render rate limit hits in the standard envelope"""
    limit_info = str(exc.detail) if hasattr(exc, 'detail') else "Rate limit exceeded"

    client_ip = get_client_ip(request)
    logger.warning(f"Rate limit exceeded for IP {client_ip} on {request.url.path}: {limit_info}")

    response = error_response(
        429,
        "Too many requests. Please try again later.",
        "RATE_LIMIT_EXCEEDED",
        {"limitInfo": limit_info, "retryAfter": "60 seconds"},
    )
    response.headers["Retry-After"] = "60"
    response.headers["X-RateLimit-Limit"] = limit_info
    return response
