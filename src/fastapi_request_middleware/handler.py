"""Handler protocol, continuation types and the Middleware base class.

A handler is any callable matching::

    async def on_request(ctx: RequestContext, next: Next) -> Response: ...

Plain ``def`` functions work too. A sync handler cannot await ``next()``,
but it may return its result unawaited and the engine awaits it::

    def passthrough(ctx: RequestContext, next: Next) -> Awaitable[Response]:
        ctx.locals["seen"] = True
        return next()
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from starlette.responses import Response

from fastapi_request_middleware.context import RequestContext

# The continuation handed to every handler
Next = Callable[[], Awaitable[Response]]

# The terminal step invoked once the chain is exhausted
Renderer = Callable[[RequestContext], Response | Awaitable[Response]]


class Handler(Protocol):
    """Protocol for middleware handlers. Functions and callable objects both qualify."""

    def __call__(
        self, ctx: RequestContext, next: Next
    ) -> Response | Awaitable[Response]: ...


class Middleware(ABC):
    """Base class for class-based handlers.

    Subclasses implement ``on_request``; instances are handlers::

        class Timing(Middleware):
            async def on_request(self, ctx, next):
                start = time.perf_counter()
                response = await next()
                response.headers["X-Time"] = f"{time.perf_counter() - start:.3f}"
                return response
    """

    @abstractmethod
    async def on_request(self, ctx: RequestContext, next: Next) -> Response: ...

    async def __call__(self, ctx: RequestContext, next: Next) -> Response:
        return await self.on_request(ctx, next)


async def invoke(func: Callable[..., Any], *args: Any) -> Any:
    """Call a sync or async callable and await the result if it is awaitable."""
    result = func(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def handler_name(handler: object) -> str:
    """Human-readable name for traces and error messages."""
    name = getattr(handler, "__qualname__", None) or getattr(handler, "__name__", None)
    if isinstance(name, str):
        return name
    return type(handler).__name__
