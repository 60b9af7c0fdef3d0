"""Chain and sequence() — ordered composition of handlers.

``sequence(a, b, c)`` returns a single handler. Invoked with ``(ctx, next)``
it runs ``a`` with a continuation that runs ``b``, whose continuation runs
``c``, whose continuation is ``next``::

    a: before -> b: before -> c: before -> next() -> c: after -> b: after -> a: after
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from starlette.responses import Response

from fastapi_request_middleware.context import RequestContext
from fastapi_request_middleware.exceptions import (
    InvalidResponseError,
    LocalsOverwriteError,
    MissingResponseError,
)
from fastapi_request_middleware.handler import Handler, Next, handler_name, invoke
from fastapi_request_middleware.hooks import ChainHook, HandlerOutcome
from fastapi_request_middleware.trace import ChainTrace, HandlerState, TraceEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedChain:
    """Immutable, composed chain. Itself a handler."""

    handlers: tuple[Handler, ...] = ()
    hooks: tuple[ChainHook, ...] = ()
    debug: bool = False

    def __len__(self) -> int:
        return len(self.handlers)

    async def __call__(self, ctx: RequestContext, next: Next) -> Response:
        return await self.run(ctx, next)

    async def run(
        self,
        ctx: RequestContext,
        terminal: Next,
        *,
        debug: bool | None = None,
        validate: bool = True,
        trace: ChainTrace | None = None,
    ) -> Response:
        """Run every handler around ``terminal``.

        ``ctx.locals`` is checked for rebinding whenever a handler calls its
        continuation and whenever a handler returns. In debug mode a
        rebinding raises LocalsOverwriteError; otherwise it is logged and
        the original mapping is put back.
        """
        debug = self.debug if debug is None else debug
        handlers = self.handlers
        hooks = self.hooks
        original = ctx.locals
        if trace is not None:
            trace.states.extend(HandlerState.PENDING for _ in handlers)

        async def dispatch(position: int) -> Response:
            if position == len(handlers):
                return await terminal()

            handler = handlers[position]
            name = handler_name(handler)
            delegated = False

            def set_state(state: HandlerState) -> None:
                if trace is not None:
                    trace.states[position] = state

            async def call_next() -> Response:
                nonlocal delegated
                delegated = True
                guard_locals(ctx, original, name, debug=debug)
                set_state(HandlerState.DELEGATED)
                try:
                    return await dispatch(position + 1)
                finally:
                    set_state(HandlerState.RUNNING)

            set_state(HandlerState.RUNNING)
            start = time.perf_counter()
            try:
                response = await invoke(handler, ctx, call_next)
                guard_locals(ctx, original, name, debug=debug)
                if validate:
                    check_response(response, name)
            except Exception as exc:
                set_state(HandlerState.FAILED)
                if trace is not None:
                    trace.entries.append(
                        TraceEntry(
                            handler_name=name,
                            position=position,
                            duration_ms=(time.perf_counter() - start) * 1000,
                            outcome="FAILED",
                            delegated=delegated,
                            reason=str(exc) or type(exc).__name__,
                        )
                    )
                failed = HandlerOutcome(
                    handler, position, error=exc, delegated=delegated
                )
                for hook in hooks:
                    await hook.on_handler(ctx, failed)
                raise

            set_state(HandlerState.DONE)
            if trace is not None:
                trace.entries.append(
                    TraceEntry(
                        handler_name=name,
                        position=position,
                        duration_ms=(time.perf_counter() - start) * 1000,
                        outcome="DONE",
                        delegated=delegated,
                    )
                )
            settled = HandlerOutcome(
                handler, position, response=response, delegated=delegated
            )
            for hook in hooks:
                await hook.on_handler(ctx, settled)
            return response

        return await dispatch(0)


class Chain:
    """Ordered container of handlers, resolved once into a ResolvedChain.

    Nested ``Chain`` and ``ResolvedChain`` items are spliced in place: their
    handlers join this chain's positions and their hooks are added to this
    chain's hooks. A nested chain marked ``debug`` makes the result debug.
    """

    def __init__(self, *handlers: ChainItem, debug: bool = False) -> None:
        self._items: list[ChainItem] = list(handlers)
        self._hooks: list[ChainHook] = []
        self._debug = debug
        self._resolved: ResolvedChain | None = None

    def add(self, *handlers: ChainItem) -> Chain:
        self._items.extend(handlers)
        self._resolved = None
        return self

    def add_hook(self, hook: ChainHook) -> Chain:
        self._hooks.append(hook)
        self._resolved = None
        return self

    def resolve(self) -> ResolvedChain:
        if self._resolved is not None:
            return self._resolved

        handlers: list[Handler] = []
        hooks: list[ChainHook] = list(self._hooks)
        debug = self._debug
        for item in self._items:
            if isinstance(item, Chain):
                item = item.resolve()
            if isinstance(item, ResolvedChain):
                handlers.extend(item.handlers)
                hooks.extend(hook for hook in item.hooks if hook not in hooks)
                debug = debug or item.debug
            else:
                handlers.append(item)

        self._resolved = ResolvedChain(
            handlers=tuple(handlers),
            hooks=tuple(hooks),
            debug=debug,
        )
        return self._resolved

    async def __call__(self, ctx: RequestContext, next: Next) -> Response:
        return await self.resolve()(ctx, next)


ChainItem = Handler | ResolvedChain | Chain


def sequence(*handlers: ChainItem) -> ResolvedChain:
    """Compose handlers into one handler that runs them in order.

    Composed sequences passed in are spliced flat, so ``sequence(a,
    sequence(b, c))`` runs exactly like ``sequence(a, b, c)``, with ``b``
    and ``c`` guarded, traced and reported to hooks like any other handler.
    With no handlers the result simply returns ``await next()``.
    """
    return Chain(*handlers).resolve()


def guard_locals(
    ctx: RequestContext,
    original: dict[str, Any],
    name: str,
    *,
    debug: bool,
) -> None:
    """Detect a rebinding of ``ctx.locals`` made by ``name``.

    The original mapping is put back in both modes, so a handler that
    catches the debug-mode error from ``next()`` is not blamed for it too.
    """
    if ctx.locals is original:
        return
    ctx.locals = original
    if debug:
        raise LocalsOverwriteError(name)
    logger.warning(
        "%s reassigned ctx.locals; discarding the new mapping and restoring "
        "the original",
        name,
    )


def check_response(value: object, name: str) -> None:
    if value is None:
        raise MissingResponseError(name)
    if not isinstance(value, Response):
        raise InvalidResponseError(name, value)


def bind_renderer(
    ctx: RequestContext,
    renderer: Callable[[RequestContext], Response | Awaitable[Response]],
    *,
    debug: bool,
    validate: bool = True,
    trace: ChainTrace | None = None,
) -> Next:
    """Build the terminal continuation that hands ``ctx`` to the renderer."""
    original = ctx.locals
    name = handler_name(renderer)

    async def render() -> Response:
        if trace is not None:
            trace.rendered = True
        response = await invoke(renderer, ctx)
        guard_locals(ctx, original, name, debug=debug)
        if validate:
            check_response(response, name)
        return response

    return render
