"""
Request middleware: request correlation and response hardening.
"""

import uuid
from typing import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from services.referral_guard import get_client_ip


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Bind a request id and the resolved client IP to the structlog context.

    Every log line emitted while handling the request carries both values,
    and the request id is echoed back in the X-Request-ID header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=get_client_ip(request.headers)[:8],
            path=request.url.path,
        )
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()

        response.headers["X-Request-ID"] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add API security headers (no sniffing, no framing, no caching) to all responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        # Verdicts are per request and must never be cached
        if "Cache-Control" not in response.headers:
            response.headers["Cache-Control"] = "no-store"

        return response
