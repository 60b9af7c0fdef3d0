"""Shared pytest fixtures for fastapi-request-middleware tests."""

from __future__ import annotations

from typing import Any

import pytest
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from fastapi_request_middleware.context import RequestContext


@pytest.fixture
def make_request() -> Any:
    """Factory for creating Starlette Request objects from a bare scope."""

    def _make(
        method: str = "GET",
        path: str = "/",
        headers: dict[str, str] | None = None,
        query_string: str = "",
    ) -> Request:
        scope: dict[str, Any] = {
            "type": "http",
            "method": method,
            "path": path,
            "query_string": query_string.encode(),
            "headers": [
                (k.lower().encode(), v.encode()) for k, v in (headers or {}).items()
            ],
            "root_path": "",
            "client": ("203.0.113.7", 51000),
        }
        return Request(scope)

    return _make


@pytest.fixture
def log() -> list[str]:
    """Ordered record of side effects shared by handlers and the renderer."""
    return []


@pytest.fixture
def renderer(log: list[str]) -> Any:
    """Terminal renderer echoing ``locals['greeting']`` when present."""

    async def render(ctx: RequestContext) -> Response:
        log.append("render")
        return PlainTextResponse(ctx.locals.get("greeting", "rendered"))

    return render


@pytest.fixture
def tracer(log: list[str]) -> Any:
    """Factory for handlers that log ``<name>-request`` / ``<name>-response``."""

    def _make(name: str) -> Any:
        async def handler(ctx: RequestContext, next: Any) -> Response:
            log.append(f"{name}-request")
            response = await next()
            log.append(f"{name}-response")
            return response

        handler.__qualname__ = name
        return handler

    return _make
