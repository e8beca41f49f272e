"""
Security Middleware

- SecurityHeadersMiddleware: security headers on every response
- RequestSizeLimitMiddleware: rejects oversized request bodies
- CsrfMiddleware: double-submit cookie check on state-changing requests
"""
import hmac
import json

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
import logging

logger = logging.getLogger(__name__)

UNSAFE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def _json_error(status_code: int, error: str, message: str, path: str) -> Response:
    return Response(
        content=json.dumps({"error": error, "message": message, "path": path}),
        status_code=status_code,
        media_type="application/json",
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds security headers to all responses.

    Headers added:
    - X-Content-Type-Options: Prevents MIME type sniffing
    - X-Frame-Options: Prevents clickjacking
    - Strict-Transport-Security: Enforces HTTPS
    - Content-Security-Policy: JSON API, nothing to load
    - Referrer-Policy: Controls referrer information
    - Permissions-Policy: Controls browser features
    """

    def __init__(
        self,
        app,
        enable_hsts: bool = True,
        hsts_max_age: int = 31536000,  # 1 year
        frame_options: str = "DENY",
        no_store_prefixes: tuple = ("/api/auth/", "/api/recovery/", "/api/users/"),
    ):
        super().__init__(app)
        self.enable_hsts = enable_hsts
        self.hsts_max_age = hsts_max_age
        self.frame_options = frame_options
        self.no_store_prefixes = no_store_prefixes

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"

        # Prevent clickjacking
        response.headers["X-Frame-Options"] = self.frame_options

        # Control referrer information; reset links carry tokens
        response.headers["Referrer-Policy"] = "no-referrer"

        # Disable browser features we don't need
        response.headers["Permissions-Policy"] = (
            "accelerometer=(), camera=(), geolocation=(), gyroscope=(), "
            "magnetometer=(), microphone=(), payment=(), usb=()"
        )

        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = (
                f"max-age={self.hsts_max_age}; includeSubDomains"
            )

        # Prevent caching of sensitive responses
        if request.url.path.startswith(self.no_store_prefixes):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"
            response.headers["Pragma"] = "no-cache"

        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Middleware that limits the size of incoming requests to prevent DoS attacks.
    """

    def __init__(self, app, max_content_length: int = 1024 * 1024):
        super().__init__(app)
        self.max_content_length = max_content_length

    async def dispatch(self, request: Request, call_next) -> Response:
        content_length = request.headers.get("content-length")

        if content_length:
            try:
                too_large = int(content_length) > self.max_content_length
            except ValueError:
                return _json_error(400, "BAD_REQUEST", "Invalid Content-Length header", request.url.path)

            if too_large:
                logger.warning(
                    f"Rejected request with content length {content_length} "
                    f"(max: {self.max_content_length})"
                )
                return _json_error(413, "PAYLOAD_TOO_LARGE", "Request body too large", request.url.path)

        return await call_next(request)


class CsrfMiddleware(BaseHTTPMiddleware):
    """
    Double-submit cookie CSRF protection.

    When a request with an unsafe method carries the CSRF cookie, the header
    must carry the same value. Requests without the cookie (bearer-token API
    clients) are not checked.
    """

    def __init__(
        self,
        app,
        cookie_name: str = "csrf_token",
        header_name: str = "X-CSRF-Token",
        exempt_paths: tuple = (),
    ):
        super().__init__(app)
        self.cookie_name = cookie_name
        self.header_name = header_name
        self.exempt_paths = exempt_paths

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method in UNSAFE_METHODS and request.url.path not in self.exempt_paths:
            cookie_token = request.cookies.get(self.cookie_name)
            if cookie_token:
                header_token = request.headers.get(self.header_name, "")
                if not hmac.compare_digest(cookie_token.encode(), header_token.encode()):
                    logger.warning(f"CSRF token mismatch on {request.method} {request.url.path}")
                    return _json_error(403, "CSRF_FAILED", "CSRF token missing or invalid", request.url.path)

        return await call_next(request)
