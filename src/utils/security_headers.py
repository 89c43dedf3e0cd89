# src/utils/security_headers.py
from __future__ import annotations

from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

# The operator pages pull Bootstrap from jsdelivr; uploads are served from /storage.
DEFAULT_CSP = (
    "default-src 'self'; "
    "img-src 'self' data:; "
    "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
    "script-src 'self' 'unsafe-inline';"
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add a baseline set of security headers to every response.

    HSTS is only sent when ``hsts`` is on (production behind TLS).
    """

    def __init__(self, app: ASGIApp, *, csp: Optional[str] = None, hsts: bool = False) -> None:
        super().__init__(app)
        self._csp = csp or DEFAULT_CSP
        self._hsts = hsts

    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)

        # Only set headers if not already present, so per-route overrides still work.
        if self._hsts:
            response.headers.setdefault(
                "Strict-Transport-Security",
                "max-age=31536000; includeSubDomains",
            )
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "same-origin")
        response.headers.setdefault(
            "Permissions-Policy",
            "geolocation=(), microphone=(), camera=()",
        )
        response.headers.setdefault("Content-Security-Policy", self._csp)

        return response
