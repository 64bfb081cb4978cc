"""Security response headers and auth-attempt logging."""

from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Content-Security-Policy": (
        "default-src 'self'; script-src 'self'; style-src 'self'; "
        "img-src 'self' data:; font-src 'self'; connect-src 'self'"
    ),
}

_AUTH_PREFIX = "/api/v1/auth"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add hardening headers to every response.

    POSTs to the auth routes are logged with client address and user agent.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.method == "POST" and request.url.path.startswith(_AUTH_PREFIX):
            logger.info(
                "Auth attempt from %s, User-Agent: %s",
                request.client.host if request.client else "unknown",
                request.headers.get("user-agent", "-"),
            )

        response = await call_next(request)
        for name, value in _HEADERS.items():
            response.headers.setdefault(name, value)
        if request.url.scheme == "https":
            response.headers.setdefault(
                "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
            )
        return response
