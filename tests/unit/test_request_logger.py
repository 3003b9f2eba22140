"""Unit tests for access logging and security header middleware."""

from __future__ import annotations

import logging
import re

from fastapi import FastAPI
from fastapi.testclient import TestClient
import pytest
from starlette.requests import Request

from app.core.config import AppSettings
from app.core.errors import register_error_handlers
from app.core.middleware import GREEN
from app.core.middleware import RED
from app.core.middleware import RESET
from app.core.middleware import SECURE_HEADERS
from app.core.middleware import YELLOW
from app.core.middleware import RequestLoggerMiddleware
from app.core.middleware import SecurityHeadersMiddleware
from app.core.middleware import client_ip
from app.core.middleware import format_access_line
from app.core.middleware import method_color
from app.core.middleware import should_skip
from app.core.middleware import status_color

MIDDLEWARE_LOGGER = "app.core.middleware"
ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")


def _plain(message: str) -> str:
    return ANSI_ESCAPE.sub("", message)


def _request(path: str = "/api/v1/users/", query: bytes = b"", headers: list[tuple[bytes, bytes]] | None = None) -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": path,
            "query_string": query,
            "headers": headers or [],
            "client": ("10.0.0.7", 51000),
        }
    )


def _build_client(settings: AppSettings) -> TestClient:
    app = FastAPI()
    register_error_handlers(app, settings)
    app.add_middleware(RequestLoggerMiddleware, settings=settings)
    app.add_middleware(SecurityHeadersMiddleware)

    @app.get("/items/{item_id}")
    def get_item(item_id: int) -> dict[str, int]:
        return {"item_id": item_id}

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/boom")
    def boom() -> None:
        raise RuntimeError("boom")

    return TestClient(app)


def _messages(caplog: pytest.LogCaptureFixture) -> list[str]:
    return [_plain(record.getMessage()) for record in caplog.records if record.name == MIDDLEWARE_LOGGER]


@pytest.mark.parametrize(
    ("status_code", "color"),
    [(503, RED), (404, YELLOW), (201, GREEN), (101, RESET)],
)
def test_status_color_bands(status_code: int, color: str) -> None:
    assert status_color(status_code) == color


def test_method_color_defaults_to_reset() -> None:
    assert method_color("DELETE") == RED
    assert method_color("OPTIONS") == RESET


def test_client_ip_prefers_first_forwarded_address() -> None:
    request = _request(headers=[(b"x-forwarded-for", b"203.0.113.9, 10.0.0.1")])

    assert client_ip(request) == "203.0.113.9"


def test_client_ip_falls_back_to_socket_peer() -> None:
    assert client_ip(_request()) == "10.0.0.7"


def test_should_skip_matches_prefixes() -> None:
    assert should_skip("/health/ready", ("/health",)) is True
    assert should_skip("/api/v1/users/", ("/health",)) is False


def test_access_line_includes_query_and_duration() -> None:
    line = format_access_line(_request(query=b"page=2"), 200, 12, include_client=True)

    assert _plain(line) == "GET /api/v1/users/?page=2 200 12ms - 10.0.0.7"


def test_completed_requests_are_logged_in_production(caplog: pytest.LogCaptureFixture) -> None:
    client = _build_client(AppSettings(environment="production"))

    with caplog.at_level(logging.INFO, logger=MIDDLEWARE_LOGGER):
        response = client.get("/items/3")

    assert response.status_code == 200
    messages = _messages(caplog)
    assert len(messages) == 1
    assert re.fullmatch(r"GET /items/3 200 \d+ms", messages[0])


def test_development_logs_start_client_and_failure_context(caplog: pytest.LogCaptureFixture) -> None:
    client = _build_client(AppSettings(environment="development"))

    with caplog.at_level(logging.INFO, logger=MIDDLEWARE_LOGGER):
        client.get("/items/nope?verbose=1")

    messages = _messages(caplog)
    assert messages[0] == "GET /items/nope?verbose=1"
    assert re.fullmatch(r"GET /items/nope\?verbose=1 400 \d+ms - testclient", messages[1])
    assert messages[2] == "  Query: {'verbose': '1'}"
    assert messages[3].startswith("  Params:")


def test_skipped_paths_are_not_logged(caplog: pytest.LogCaptureFixture) -> None:
    client = _build_client(AppSettings(environment="production"))

    with caplog.at_level(logging.INFO, logger=MIDDLEWARE_LOGGER):
        client.get("/health")

    assert _messages(caplog) == []


def test_detailed_mode_logs_request_block(caplog: pytest.LogCaptureFixture) -> None:
    client = _build_client(AppSettings(environment="production", debug_requests=True))

    with caplog.at_level(logging.INFO, logger=MIDDLEWARE_LOGGER):
        client.get("/items/5?expand=true", headers={"user-agent": "pytest-agent"})

    messages = _messages(caplog)
    assert "URL: /items/5?expand=true" in messages
    assert "User-Agent: pytest-agent" in messages
    assert "Query: {'expand': 'true'}" in messages
    assert "Status: 200" in messages
    assert any(message.startswith("Duration:") for message in messages)


def test_unhandled_errors_are_still_access_logged(caplog: pytest.LogCaptureFixture) -> None:
    client = _build_client(AppSettings(environment="production"))

    with caplog.at_level(logging.INFO, logger=MIDDLEWARE_LOGGER):
        response = client.get("/boom")

    assert response.status_code == 500
    assert any(re.fullmatch(r"GET /boom 500 \d+ms", message) for message in _messages(caplog))


def test_security_headers_are_added() -> None:
    client = _build_client(AppSettings(environment="production"))

    response = client.get("/items/1")

    for header_name, header_value in SECURE_HEADERS.items():
        assert response.headers[header_name] == header_value
