"""Starlette/FastAPI adapter — runs a handler chain around the downstream app.

Usage::

    app = FastAPI()
    install(app, [validate, auth, greet])

    @app.get("/")
    async def index(locals: dict[str, Any] = Depends(get_locals)) -> dict[str, Any]:
        return locals
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from fastapi_request_middleware.config import MiddlewareConfig
from fastapi_request_middleware.context import RequestContext, create_context
from fastapi_request_middleware.dispatch import Dispatcher, OnRequest
from fastapi_request_middleware.exceptions import ContextNotFoundError
from fastapi_request_middleware.hooks import ChainHook


class LocalsMiddleware(BaseHTTPMiddleware):
    """Dispatch every HTTP request through ``on_request``.

    The downstream app (routing and endpoints) is the renderer. The context
    is stored on ``request.state`` so endpoints can read ``locals``.

    A handler that calls ``next()`` twice runs the downstream app twice on
    the same Request. The request body is streamed to the first call only,
    so only bodyless requests can be re-run this way.
    """

    def __init__(
        self,
        app: ASGIApp,
        on_request: OnRequest,
        *,
        config: MiddlewareConfig | None = None,
        hooks: Sequence[ChainHook] = (),
    ) -> None:
        super().__init__(app)
        self.config = config or MiddlewareConfig()
        self.dispatcher = Dispatcher(on_request, config=self.config, hooks=hooks)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        ctx = create_context(request)
        setattr(request.state, self.config.state_attribute, ctx)

        async def render_downstream(ctx: RequestContext) -> Response:
            return await call_next(ctx.request)

        return await self.dispatcher.dispatch_context(ctx, renderer=render_downstream)


def install(
    app: Any,
    on_request: OnRequest,
    *,
    config: MiddlewareConfig | None = None,
    hooks: Sequence[ChainHook] = (),
) -> None:
    """Register LocalsMiddleware on a Starlette or FastAPI application."""
    app.add_middleware(LocalsMiddleware, on_request=on_request, config=config, hooks=hooks)


def context_dependency(
    state_attribute: str = "ctx",
) -> Callable[[Request], RequestContext]:
    """Return a FastAPI dependency yielding the request's RequestContext."""

    def dependency(request: Request) -> RequestContext:
        ctx = getattr(request.state, state_attribute, None)
        if not isinstance(ctx, RequestContext):
            raise ContextNotFoundError()
        return ctx

    return dependency


get_context = context_dependency()


def get_locals(request: Request) -> dict[str, Any]:
    """FastAPI dependency yielding the request's ``locals``."""
    return get_context(request).locals
