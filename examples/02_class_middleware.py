"""
Class-based middleware, hooks and debugging.

Demonstrates:
- Writing handlers as Middleware subclasses
- Building a Chain incrementally with lifecycle hooks
- Debug mode: locals rebinding raises, ChainTrace is recorded
- Recovering from downstream errors inside a handler
- Serializing locals for a cache that lives outside the process
"""

import logging
import time
from typing import Any

from fastapi import Depends, FastAPI
from starlette.responses import JSONResponse, Response

from fastapi_request_middleware import (
    AfterChain,
    Chain,
    Middleware,
    MiddlewareConfig,
    Next,
    RequestContext,
    get_context,
    install,
    try_serialize_locals,
)

logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger("examples.class_middleware")

app = FastAPI(title="Class Middleware Examples")


# ========== Middleware classes ==========


class Timing(Middleware):
    """Adds X-Response-Time to every response."""

    async def on_request(self, ctx: RequestContext, next: Next) -> Response:
        start = time.perf_counter()
        response = await next()
        response.headers["X-Response-Time"] = f"{time.perf_counter() - start:.4f}"
        return response


class ErrorBoundary(Middleware):
    """Turns downstream failures into a JSON error instead of a bare 500."""

    async def on_request(self, ctx: RequestContext, next: Next) -> Response:
        try:
            return await next()
        except LookupError as exc:
            logger.warning("Lookup failed for %s: %s", ctx.url.path, exc)
            return JSONResponse({"error": "not found"}, status_code=404)


class Tenant(Middleware):
    """Resolves the tenant from a header."""

    def __init__(self, default: str) -> None:
        self.default = default

    async def on_request(self, ctx: RequestContext, next: Next) -> Response:
        ctx.locals["tenant"] = ctx.headers.get("x-tenant", self.default)
        return await next()


# ========== Hooks ==========

_session_cache: dict[str, str] = {}


async def cache_locals(
    ctx: RequestContext, response: Response | None, error: Exception | None
) -> None:
    """Store a serialized copy of locals for requests that succeeded."""
    if response is None or response.status_code >= 400:
        return
    _session_cache[ctx.client_host or "unknown"] = try_serialize_locals(ctx.locals)


async def log_trace(
    ctx: RequestContext, response: Response | None, error: Exception | None
) -> None:
    if ctx.trace is not None:
        for entry in ctx.trace.entries:
            logger.debug(
                "%s #%d %s in %.3fms",
                entry.handler_name,
                entry.position,
                entry.outcome,
                entry.duration_ms,
            )


chain = (
    Chain(Timing(), ErrorBoundary())
    .add(Tenant(default="public"))
    .add_hook(AfterChain(cache_locals))
    .add_hook(AfterChain(log_trace))
)

install(app, chain, config=MiddlewareConfig(debug=True))


# ========== Endpoints ==========

_ITEMS = {"public": ["welcome"], "acme": ["invoice-1", "invoice-2"]}


@app.get("/items")
async def items(ctx: RequestContext = Depends(get_context)) -> dict[str, Any]:
    return {"tenant": ctx.locals["tenant"], "items": _ITEMS[ctx.locals["tenant"]]}


@app.get("/cache")
async def cache() -> dict[str, str]:
    return _session_cache


if __name__ == "__main__":
    import uvicorn

    print("Starting Class Middleware Examples server...")
    print("Try:")
    print("  curl -i http://localhost:8000/items")
    print("  curl -i http://localhost:8000/items -H 'X-Tenant: acme'")
    print("  curl -i http://localhost:8000/items -H 'X-Tenant: nobody'  # 404")
    print("  curl http://localhost:8000/cache")
    uvicorn.run(app, host="0.0.0.0", port=8000)
