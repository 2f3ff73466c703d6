"""Middleware adding security headers and HTTPS enforcement to every response."""

from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Security rules:
    - Every response carries CSP, X-Frame-Options DENY and nosniff headers
    - With enforce_https, plain HTTP requests are redirected (301) to https
      and responses carry HSTS
    - Behind a reverse proxy the scheme is read from X-Forwarded-Proto
    """

    CONTENT_SECURITY_POLICY = (
        "default-src 'self'; script-src 'self'; style-src 'self' 'unsafe-inline'; "
        "img-src 'self' data:; connect-src 'self'"
    )
    HSTS = "max-age=31536000; includeSubDomains; preload"

    # Paths that must answer over plain HTTP (load balancer probes)
    HTTPS_EXEMPT = {"/health"}

    def __init__(self, app: ASGIApp, enforce_https: bool = False):
        super().__init__(app)
        self.enforce_https = enforce_https

    async def dispatch(self, request: Request, call_next):
        """Redirect insecure requests, then decorate the response."""
        if self.enforce_https and request.url.path not in self.HTTPS_EXEMPT:
            proto = request.headers.get("x-forwarded-proto", request.url.scheme)
            if proto.split(",")[0].strip() != "https":
                return RedirectResponse(url=str(request.url.replace(scheme="https")), status_code=301)

        response = await call_next(request)
        response.headers.setdefault("Content-Security-Policy", self.CONTENT_SECURITY_POLICY)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "no-referrer"
        if self.enforce_https:
            response.headers["Strict-Transport-Security"] = self.HSTS
        return response
