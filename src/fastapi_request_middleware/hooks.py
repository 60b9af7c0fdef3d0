"""Lifecycle hooks observed around a chain run.

A hook sees three moments of one request: before the first handler, each
time a handler settles (with the response it returned or the error it
raised), and once the whole chain has produced its response or failed.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from starlette.responses import Response

from fastapi_request_middleware.context import RequestContext
from fastapi_request_middleware.handler import Handler, handler_name


@dataclass(frozen=True)
class HandlerOutcome:
    """How one handler settled.

    ``response`` is what the handler returned after any post-processing, so
    a hook can read headers set on the way out. Exactly one of ``response``
    and ``error`` is set.
    """

    handler: Handler
    position: int
    response: Response | None = None
    error: Exception | None = None
    delegated: bool = False

    @property
    def name(self) -> str:
        return handler_name(self.handler)

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def short_circuited(self) -> bool:
        """True when the handler answered without calling ``next()``."""
        return not self.delegated and not self.failed


class ChainHook:
    """Base class for hooks. Every method does nothing unless overridden."""

    async def on_chain_start(self, ctx: RequestContext) -> None:
        pass

    async def on_handler(self, ctx: RequestContext, outcome: HandlerOutcome) -> None:
        pass

    async def on_chain_end(
        self,
        ctx: RequestContext,
        response: Response | None,
        error: Exception | None,
    ) -> None:
        pass


class BeforeChain(ChainHook):
    """Run ``callback(ctx)`` before the first handler."""

    def __init__(self, callback: Callable[[RequestContext], Awaitable[None]]) -> None:
        self.callback = callback

    async def on_chain_start(self, ctx: RequestContext) -> None:
        await self.callback(ctx)


ChainEndCallback = Callable[
    [RequestContext, Response | None, Exception | None], Awaitable[None]
]


class AfterChain(ChainHook):
    """Run ``callback(ctx, response, error)`` once the chain has settled.

    Fires on failure too, with ``response`` set to None.
    """

    def __init__(self, callback: ChainEndCallback) -> None:
        self.callback = callback

    async def on_chain_end(
        self,
        ctx: RequestContext,
        response: Response | None,
        error: Exception | None,
    ) -> None:
        await self.callback(ctx, response, error)


class AfterHandler(ChainHook):
    """Run ``callback(ctx, outcome)`` when selected handlers settle.

    With no ``handlers`` every handler is observed; otherwise only those
    listed (matched by identity, so handlers from nested sequences can be
    named directly). ``failures_only`` drops outcomes that carry a response.
    """

    def __init__(
        self,
        callback: Callable[[RequestContext, HandlerOutcome], Awaitable[None]],
        *handlers: Handler,
        failures_only: bool = False,
    ) -> None:
        self.callback = callback
        self.handlers = handlers
        self.failures_only = failures_only

    def observes(self, outcome: HandlerOutcome) -> bool:
        if self.failures_only and not outcome.failed:
            return False
        if not self.handlers:
            return True
        return any(outcome.handler is handler for handler in self.handlers)

    async def on_handler(self, ctx: RequestContext, outcome: HandlerOutcome) -> None:
        if self.observes(outcome):
            await self.callback(ctx, outcome)
