"""Dispatcher — runs the root handler around the renderer, once per request."""

from __future__ import annotations

import importlib
import logging
import time
from collections.abc import Sequence

from starlette.requests import Request
from starlette.responses import Response

from fastapi_request_middleware.config import MiddlewareConfig
from fastapi_request_middleware.context import RequestContext, create_context
from fastapi_request_middleware.exceptions import MiddlewareNotFoundError
from fastapi_request_middleware.handler import Handler, Renderer
from fastapi_request_middleware.hooks import ChainHook
from fastapi_request_middleware.sequence import (
    Chain,
    ResolvedChain,
    bind_renderer,
    sequence,
)
from fastapi_request_middleware.trace import ChainTrace

logger = logging.getLogger(__name__)

ENTRY_POINT = "on_request"

OnRequest = Handler | Chain | Sequence[Handler | Chain] | str


def load_on_request(target: str) -> Handler:
    """Import the handler named by ``"package.module"`` or ``"package.module:attr"``.

    Without an explicit attribute the module's ``on_request`` is used.
    """
    module_name, _, attr = target.partition(":")
    attr = attr or ENTRY_POINT
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise MiddlewareNotFoundError(
            f"Cannot import middleware module {module_name!r}"
        ) from exc

    handler = getattr(module, attr, None)
    if handler is None:
        raise MiddlewareNotFoundError(
            f"Module {module_name!r} has no attribute {attr!r}"
        )
    if not callable(handler):
        raise MiddlewareNotFoundError(
            f"{module_name}:{attr} is {type(handler).__name__}, not a handler"
        )
    return handler


def resolve_handler(on_request: OnRequest) -> ResolvedChain:
    """Normalize any accepted ``on_request`` declaration into a ResolvedChain."""
    if isinstance(on_request, ResolvedChain):
        return on_request
    if isinstance(on_request, Chain):
        return on_request.resolve()
    if isinstance(on_request, str):
        return sequence(load_on_request(on_request))
    if isinstance(on_request, (list, tuple)):
        return sequence(*on_request)
    if callable(on_request):
        return sequence(on_request)
    raise MiddlewareNotFoundError(
        f"Expected a handler, chain or import string, got {type(on_request).__name__}"
    )


class Dispatcher:
    """Entry point used by server adapters.

    Builds one RequestContext per request and runs the root handler with a
    continuation bound to ``renderer``. Handler and renderer errors propagate
    to the caller unchanged.
    """

    def __init__(
        self,
        on_request: OnRequest,
        renderer: Renderer | None = None,
        *,
        config: MiddlewareConfig | None = None,
        hooks: Sequence[ChainHook] = (),
    ) -> None:
        self._chain = resolve_handler(on_request)
        self._renderer = renderer
        self._config = config or MiddlewareConfig()
        self._hooks = tuple(self._chain.hooks) + tuple(hooks)

    @property
    def chain(self) -> ResolvedChain:
        return self._chain

    @property
    def config(self) -> MiddlewareConfig:
        return self._config

    @property
    def debug(self) -> bool:
        return self._config.debug or self._chain.debug

    async def dispatch(
        self, request: Request, *, renderer: Renderer | None = None
    ) -> Response:
        return await self.dispatch_context(create_context(request), renderer=renderer)

    async def dispatch_context(
        self, ctx: RequestContext, *, renderer: Renderer | None = None
    ) -> Response:
        """Run the chain for an already constructed context.

        ``renderer`` overrides the one given at construction for this request.
        """
        renderer = renderer or self._renderer
        if renderer is None:
            raise TypeError("Dispatcher has no renderer for this request")
        debug = self.debug
        validate = self._config.validate_responses
        trace = ChainTrace() if debug else None
        ctx.trace = trace
        chain = ResolvedChain(
            handlers=self._chain.handlers, hooks=self._hooks, debug=debug
        )
        start = time.perf_counter()
        logger.debug(
            "Dispatching %s %s through %d handler(s)",
            ctx.method,
            ctx.url.path,
            len(chain),
        )

        for hook in self._hooks:
            await hook.on_chain_start(ctx)

        response: Response | None = None
        error: Exception | None = None
        try:
            terminal = bind_renderer(
                ctx, renderer, debug=debug, validate=validate, trace=trace
            )
            response = await chain.run(
                ctx, terminal, debug=debug, validate=validate, trace=trace
            )
        except Exception as exc:
            error = exc
            if trace is not None:
                trace.outcome = "ERROR"
                trace.error = exc
                trace.total_duration_ms = (time.perf_counter() - start) * 1000
            raise
        else:
            if trace is not None:
                trace.outcome = "OK" if trace.rendered else "SHORT_CIRCUITED"
                trace.total_duration_ms = (time.perf_counter() - start) * 1000
        finally:
            for hook in self._hooks:
                await hook.on_chain_end(ctx, response, error)

        logger.debug(
            "Dispatched %s %s -> %s in %.3fms",
            ctx.method,
            ctx.url.path,
            getattr(response, "status_code", None),
            (time.perf_counter() - start) * 1000,
        )
        return response

    __call__ = dispatch
