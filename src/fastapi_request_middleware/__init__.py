"""FastAPI Request Middleware - onion-style handler chains with per-request locals."""

from fastapi_request_middleware.config import MiddlewareConfig
from fastapi_request_middleware.context import RequestContext, create_context
from fastapi_request_middleware.dispatch import (
    Dispatcher,
    load_on_request,
    resolve_handler,
)
from fastapi_request_middleware.exceptions import (
    ContextNotFoundError,
    InvalidResponseError,
    LocalsOverwriteError,
    MiddlewareException,
    MiddlewareNotFoundError,
    MissingResponseError,
    SerializationError,
)
from fastapi_request_middleware.handler import Handler, Middleware, Next, Renderer
from fastapi_request_middleware.hooks import (
    AfterChain,
    AfterHandler,
    BeforeChain,
    ChainHook,
    HandlerOutcome,
)
from fastapi_request_middleware.integration import (
    LocalsMiddleware,
    context_dependency,
    get_context,
    get_locals,
    install,
)
from fastapi_request_middleware.sequence import Chain, ResolvedChain, sequence
from fastapi_request_middleware.serialize import (
    deserialize_locals,
    try_serialize_locals,
)
from fastapi_request_middleware.trace import ChainTrace, HandlerState, TraceEntry

__all__ = [
    "AfterChain",
    "AfterHandler",
    "BeforeChain",
    "Chain",
    "ChainHook",
    "ChainTrace",
    "ContextNotFoundError",
    "Dispatcher",
    "Handler",
    "HandlerOutcome",
    "HandlerState",
    "InvalidResponseError",
    "LocalsMiddleware",
    "LocalsOverwriteError",
    "Middleware",
    "MiddlewareConfig",
    "MiddlewareException",
    "MiddlewareNotFoundError",
    "MissingResponseError",
    "Next",
    "Renderer",
    "RequestContext",
    "ResolvedChain",
    "SerializationError",
    "TraceEntry",
    "context_dependency",
    "create_context",
    "deserialize_locals",
    "get_context",
    "get_locals",
    "install",
    "load_on_request",
    "resolve_handler",
    "sequence",
    "try_serialize_locals",
]
