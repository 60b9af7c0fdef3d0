"""
Basic usage examples.

Demonstrates:
- Declaring handlers that run before and after the endpoint
- Sharing data with endpoints through ctx.locals
- Composing handlers with sequence()
- Short-circuiting with a redirect
"""

from typing import Any

from fastapi import Depends, FastAPI
from starlette.responses import Response

from fastapi_request_middleware import (
    Next,
    RequestContext,
    get_locals,
    install,
    sequence,
)

app = FastAPI(title="Basic Middleware Examples")


# ========== Handlers ==========


async def validation(ctx: RequestContext, next: Next) -> Response:
    """Reject requests without a client identifier."""
    print("validation request")
    if ctx.url.path.startswith("/private") and "x-client" not in ctx.headers:
        return ctx.redirect("/")
    response = await next()
    print("validation response")
    return response


async def auth(ctx: RequestContext, next: Next) -> Response:
    """Attach a user to locals."""
    print("auth request")
    ctx.locals["user"] = {"name": ctx.headers.get("x-user", "guest")}
    response = await next()
    print("auth response")
    return response


async def greeting(ctx: RequestContext, next: Next) -> Response:
    """Build a greeting from the authenticated user and stamp the response."""
    print("greeting request")
    ctx.locals["greeting"] = f"Hello, {ctx.locals['user']['name']}"
    response = await next()
    response.headers["X-Greeted"] = ctx.locals["user"]["name"]
    print("greeting response")
    return response


on_request = sequence(validation, auth, greeting)

install(app, on_request)


# ========== Endpoints ==========


@app.get("/")
async def index(locals: dict[str, Any] = Depends(get_locals)) -> dict[str, Any]:
    """Read values set by the handlers."""
    return {"greeting": locals["greeting"]}


@app.get("/private/profile")
async def profile(locals: dict[str, Any] = Depends(get_locals)) -> dict[str, Any]:
    return {"user": locals["user"]}


if __name__ == "__main__":
    import uvicorn

    print("Starting Basic Middleware Examples server...")
    print("Try:")
    print("  curl http://localhost:8000/ -H 'X-User: ada'")
    print("  curl -i http://localhost:8000/private/profile")
    uvicorn.run(app, host="0.0.0.0", port=8000)
