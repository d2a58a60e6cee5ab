"""Security headers added to every API response.

The header set mirrors what the helmet defaults give an Express service:
no MIME sniffing, no framing, no referrer leakage, same-origin isolation
and HSTS.
"""

from collections.abc import Awaitable, Callable
from typing import Final

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.api.constants import DEFAULT_HSTS_MAX_AGE

STATIC_SECURITY_HEADERS: Final[dict[str, str]] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "0",
    "Referrer-Policy": "no-referrer",
    "X-DNS-Prefetch-Control": "off",
    "X-Permitted-Cross-Domain-Policies": "none",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
}


def build_hsts_header(
    max_age: int, *, include_subdomains: bool = True, preload: bool = False
) -> str:
    """Build a Strict-Transport-Security header value.

    Examples:
        >>> build_hsts_header(60)
        'max-age=60; includeSubDomains'
        >>> build_hsts_header(60, include_subdomains=False, preload=True)
        'max-age=60; preload'
    """
    directives = [f"max-age={max_age}"]
    if include_subdomains:
        directives.append("includeSubDomains")
    if preload:
        directives.append("preload")
    return "; ".join(directives)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses.

    Headers already set by a route are left untouched.

    Args:
        app: The ASGI application to wrap.
        hsts_enabled: Whether to include the HSTS header.
        hsts_max_age: Max age for HSTS in seconds (defaults to 1 year).
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        hsts_enabled: bool = True,
        hsts_max_age: int = DEFAULT_HSTS_MAX_AGE,
    ) -> None:
        super().__init__(app)
        self.headers = dict(STATIC_SECURITY_HEADERS)
        if hsts_enabled:
            self.headers["Strict-Transport-Security"] = build_hsts_header(hsts_max_age)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Add security headers to the response."""
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        return response
