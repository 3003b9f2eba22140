"""Access logging and secure headers middleware."""

from __future__ import annotations

from collections.abc import Sequence
import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.base import RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from app.core.config import AppSettings

logger = logging.getLogger(__name__)

RESET = "\x1b[0m"
BRIGHT = "\x1b[1m"
RED = "\x1b[31m"
GREEN = "\x1b[32m"
YELLOW = "\x1b[33m"
BLUE = "\x1b[34m"
MAGENTA = "\x1b[35m"
CYAN = "\x1b[36m"

METHOD_COLORS = {
    "GET": GREEN,
    "POST": BLUE,
    "PUT": YELLOW,
    "PATCH": MAGENTA,
    "DELETE": RED,
}

SECURE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": "default-src 'self'",
    "X-XSS-Protection": "1; mode=block",
}


def status_color(status_code: int) -> str:
    if status_code >= 500:
        return RED
    if status_code >= 400:
        return YELLOW
    if status_code >= 300:
        return CYAN
    if status_code >= 200:
        return GREEN
    return RESET


def method_color(method: str) -> str:
    return METHOD_COLORS.get(method, RESET)


def client_ip(request: Request) -> str:
    """Return the originating client address, preferring X-Forwarded-For."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


def original_url(request: Request) -> str:
    if request.url.query:
        return f"{request.url.path}?{request.url.query}"
    return request.url.path


def should_skip(path: str, skip_paths: Sequence[str]) -> bool:
    return any(path.startswith(prefix) for prefix in skip_paths)


def format_access_line(
    request: Request,
    status_code: int,
    duration_ms: int,
    *,
    include_client: bool,
) -> str:
    """Build the single-line access log entry for a completed request."""
    parts = [
        f"{method_color(request.method)}{request.method}{RESET}",
        original_url(request),
        f"{status_color(status_code)}{status_code}{RESET}",
        f"{duration_ms}ms",
    ]
    if include_client:
        parts.append(f"- {client_ip(request)}")
    return " ".join(parts)


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """Log every request with method, path, status and response time.

    In detailed mode each request is logged as a multi-line block with the
    client address, user agent, path params and query. Request bodies are
    never logged.
    """

    def __init__(self, app: ASGIApp, *, settings: AppSettings) -> None:
        super().__init__(app)
        self._settings = settings

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if should_skip(request.url.path, self._settings.log_skip_paths):
            return await call_next(request)

        if self._settings.debug_requests:
            self._log_incoming(request)
        elif self._settings.is_development:
            logger.info("%s%s%s %s", method_color(request.method), request.method, RESET, original_url(request))

        started = time.perf_counter()
        response = await call_next(request)
        self._log_completed(request, response.status_code, started)
        return response

    def _log_incoming(self, request: Request) -> None:
        logger.info("%s", "=" * 80)
        logger.info("%sIncoming Request%s", BRIGHT, RESET)
        logger.info("%sMethod:%s %s", method_color(request.method), RESET, request.method)
        logger.info("%sURL:%s %s", CYAN, RESET, original_url(request))
        logger.info("%sIP:%s %s", CYAN, RESET, client_ip(request))
        logger.info("%sUser-Agent:%s %s", CYAN, RESET, request.headers.get("user-agent", "N/A"))
        if request.query_params:
            logger.info("%sQuery:%s %s", YELLOW, RESET, dict(request.query_params))

    def _log_completed(self, request: Request, status_code: int, started: float) -> None:
        duration_ms = int((time.perf_counter() - started) * 1000)

        if self._settings.debug_requests:
            if request.path_params:
                logger.info("%sParams:%s %s", MAGENTA, RESET, request.path_params)
            logger.info("%sStatus:%s %s", status_color(status_code), RESET, status_code)
            logger.info("%sDuration:%s %sms", GREEN, RESET, duration_ms)
            logger.info("%s", "=" * 80)
            return

        logger.info(
            "%s",
            format_access_line(
                request,
                status_code,
                duration_ms,
                include_client=self._settings.is_development,
            ),
        )
        if status_code >= 400 and self._settings.is_development:
            logger.info("  Query: %s", dict(request.query_params))
            logger.info("  Params: %s", request.path_params)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add restrictive security headers to every response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        for header_name, header_value in SECURE_HEADERS.items():
            response.headers[header_name] = header_value
        return response
