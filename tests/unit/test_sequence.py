"""Tests for Chain, ResolvedChain and sequence()."""

from __future__ import annotations

from typing import Any

import pytest
from starlette.responses import PlainTextResponse, Response

from fastapi_request_middleware.context import RequestContext
from fastapi_request_middleware.exceptions import (
    InvalidResponseError,
    LocalsOverwriteError,
    MissingResponseError,
)
from fastapi_request_middleware.hooks import ChainHook
from fastapi_request_middleware.sequence import Chain, ResolvedChain, sequence


def _terminal(log: list[str], body: str = "rendered") -> Any:
    async def terminal() -> Response:
        log.append("render")
        return PlainTextResponse(body)

    return terminal


async def _noop(ctx: RequestContext, next: Any) -> Response:
    return await next()


class TestChain:
    def test_init_with_handlers(self) -> None:
        chain = Chain(_noop, _noop)
        assert len(chain.resolve()) == 2

    def test_init_empty(self) -> None:
        assert chain_handlers(Chain()) == ()

    def test_add_returns_self(self) -> None:
        chain = Chain()
        assert chain.add(_noop) is chain

    def test_preserves_declaration_order(self) -> None:
        async def a(ctx: RequestContext, next: Any) -> Response:
            return await next()

        async def b(ctx: RequestContext, next: Any) -> Response:
            return await next()

        assert chain_handlers(Chain(b, a)) == (b, a)

    def test_nested_chain_flattening(self) -> None:
        async def a(ctx: RequestContext, next: Any) -> Response:
            return await next()

        async def b(ctx: RequestContext, next: Any) -> Response:
            return await next()

        inner = Chain(Chain(b))
        assert chain_handlers(Chain(a, inner, _noop)) == (a, b, _noop)

    def test_nested_resolved_chain_flattening(self) -> None:
        async def a(ctx: RequestContext, next: Any) -> Response:
            return await next()

        async def b(ctx: RequestContext, next: Any) -> Response:
            return await next()

        composed = sequence(a, sequence(b, sequence(_noop)))
        assert composed.handlers == (a, b, _noop)

    def test_nested_hooks_and_debug_merged(self) -> None:
        hook = ChainHook()
        inner = Chain(_noop, debug=True).add_hook(hook)
        outer = sequence(_noop, inner, inner.resolve())
        assert outer.hooks == (hook,)
        assert outer.debug is True

    def test_resolve_caches_result(self) -> None:
        chain = Chain(_noop)
        assert chain.resolve() is chain.resolve()

    def test_add_invalidates_resolve_cache(self) -> None:
        chain = Chain(_noop)
        r1 = chain.resolve()
        chain.add(_noop)
        r2 = chain.resolve()
        assert r1 is not r2
        assert len(r2) == 2

    def test_resolved_handlers_are_tuple(self) -> None:
        resolved = Chain(_noop).resolve()
        assert isinstance(resolved, ResolvedChain)
        assert isinstance(resolved.handlers, tuple)

    def test_debug_flag_propagated(self) -> None:
        assert Chain(_noop, debug=True).resolve().debug is True
        assert Chain(_noop).resolve().debug is False

    async def test_chain_is_a_handler(self, make_request: Any) -> None:
        log: list[str] = []
        ctx = RequestContext(request=make_request())
        response = await Chain(_noop)(ctx, _terminal(log))
        assert response.body == b"rendered"
        assert log == ["render"]


def chain_handlers(chain: Chain) -> tuple[Any, ...]:
    return chain.resolve().handlers


class TestSequenceOrdering:
    async def test_onion_order(self, make_request: Any, tracer: Any, log: list[str]) -> None:
        composed = sequence(tracer("a"), tracer("b"), tracer("c"))
        ctx = RequestContext(request=make_request())
        response = await composed(ctx, _terminal(log))
        assert response.body == b"rendered"
        assert log == [
            "a-request",
            "b-request",
            "c-request",
            "render",
            "c-response",
            "b-response",
            "a-response",
        ]

    async def test_empty_sequence_is_identity(self, make_request: Any) -> None:
        log: list[str] = []
        ctx = RequestContext(request=make_request())
        response = await sequence()(ctx, _terminal(log, "direct"))
        assert response.body == b"direct"
        assert log == ["render"]

    async def test_nested_sequences_keep_order(
        self, make_request: Any, tracer: Any, log: list[str]
    ) -> None:
        composed = sequence(tracer("a"), sequence(tracer("b"), tracer("c")))
        await composed(RequestContext(request=make_request()), _terminal(log))
        assert log == [
            "a-request",
            "b-request",
            "c-request",
            "render",
            "c-response",
            "b-response",
            "a-response",
        ]

    async def test_post_processing_sees_inner_response(self, make_request: Any) -> None:
        async def stamp(ctx: RequestContext, next: Any) -> Response:
            response = await next()
            response.headers["X-Stamp"] = "outer"
            return response

        composed = sequence(stamp)
        response = await composed(RequestContext(request=make_request()), _terminal([]))
        assert response.headers["x-stamp"] == "outer"


class TestSequenceLocals:
    async def test_locals_visible_downstream(self, make_request: Any) -> None:
        seen: list[Any] = []

        async def first(ctx: RequestContext, next: Any) -> Response:
            ctx.locals["user"] = "ada"
            return await next()

        async def second(ctx: RequestContext, next: Any) -> Response:
            seen.append(ctx.locals.get("user"))
            ctx.locals["role"] = "admin"
            return await next()

        ctx = RequestContext(request=make_request())

        async def terminal() -> Response:
            seen.append(dict(ctx.locals))
            return PlainTextResponse("ok")

        await sequence(first, second)(ctx, terminal)
        assert seen == ["ada", {"user": "ada", "role": "admin"}]

    async def test_rebinding_raises_in_debug(self, make_request: Any) -> None:
        async def rebind(ctx: RequestContext, next: Any) -> Response:
            ctx.locals = {"replaced": True}
            return await next()

        log: list[str] = []
        composed = Chain(rebind, debug=True).resolve()
        with pytest.raises(LocalsOverwriteError) as exc_info:
            await composed(RequestContext(request=make_request()), _terminal(log))
        assert exc_info.value.handler_name.endswith("rebind")
        assert log == []

    async def test_rebinding_after_next_raises_in_debug(self, make_request: Any) -> None:
        async def rebind_late(ctx: RequestContext, next: Any) -> Response:
            response = await next()
            ctx.locals = {}
            return response

        composed = Chain(rebind_late, debug=True).resolve()
        with pytest.raises(LocalsOverwriteError):
            await composed(RequestContext(request=make_request()), _terminal([]))

    async def test_rebinding_in_nested_sequence_raises_in_debug(
        self, make_request: Any
    ) -> None:
        async def rebind(ctx: RequestContext, next: Any) -> Response:
            ctx.locals = {}
            return await next()

        log: list[str] = []
        composed = Chain(_noop, sequence(rebind), debug=True).resolve()
        with pytest.raises(LocalsOverwriteError) as exc_info:
            await composed(RequestContext(request=make_request()), _terminal(log))
        assert exc_info.value.handler_name.endswith("rebind")
        assert log == []

    async def test_outer_handler_can_recover_in_debug(self, make_request: Any) -> None:
        async def recover(ctx: RequestContext, next: Any) -> Response:
            try:
                return await next()
            except LocalsOverwriteError:
                return PlainTextResponse("recovered", status_code=500)

        async def rebind(ctx: RequestContext, next: Any) -> Response:
            ctx.locals = {"replaced": True}
            return await next()

        ctx = RequestContext(request=make_request())
        original = ctx.locals
        composed = Chain(recover, rebind, debug=True).resolve()
        response = await composed(ctx, _terminal([]))
        assert response.body == b"recovered"
        assert ctx.locals is original

    async def test_rebinding_restored_outside_debug(
        self, make_request: Any, caplog: pytest.LogCaptureFixture
    ) -> None:
        async def rebind(ctx: RequestContext, next: Any) -> Response:
            ctx.locals["kept"] = 1
            ctx.locals = {"dropped": 1}
            return await next()

        ctx = RequestContext(request=make_request())
        original = ctx.locals
        seen: list[dict[str, Any]] = []

        async def terminal() -> Response:
            seen.append(ctx.locals)
            return PlainTextResponse("ok")

        with caplog.at_level("WARNING", logger="fastapi_request_middleware.sequence"):
            await sequence(rebind)(ctx, terminal)

        assert seen[0] is original
        assert ctx.locals == {"kept": 1}
        assert "reassigned ctx.locals" in caplog.text


class TestSequenceShortCircuit:
    async def test_handler_without_next_skips_rest(
        self, make_request: Any, tracer: Any, log: list[str]
    ) -> None:
        async def deny(ctx: RequestContext, next: Any) -> Response:
            log.append("deny")
            return PlainTextResponse("denied", status_code=403)

        composed = sequence(tracer("a"), deny, tracer("c"))
        response = await composed(RequestContext(request=make_request()), _terminal(log))
        assert response.status_code == 403
        assert log == ["a-request", "deny", "a-response"]

    async def test_next_called_twice_reruns_remainder(
        self, make_request: Any, tracer: Any, log: list[str]
    ) -> None:
        async def twice(ctx: RequestContext, next: Any) -> Response:
            await next()
            return await next()

        composed = sequence(twice, tracer("inner"))
        await composed(RequestContext(request=make_request()), _terminal(log))
        assert log == [
            "inner-request",
            "render",
            "inner-response",
            "inner-request",
            "render",
            "inner-response",
        ]


class TestSequenceErrors:
    async def test_errors_propagate_unchanged(
        self, make_request: Any, tracer: Any, log: list[str]
    ) -> None:
        class Boom(Exception):
            pass

        async def explode(ctx: RequestContext, next: Any) -> Response:
            raise Boom("boom")

        composed = sequence(tracer("a"), explode)
        with pytest.raises(Boom):
            await composed(RequestContext(request=make_request()), _terminal(log))
        assert log == ["a-request"]

    async def test_handler_can_recover(self, make_request: Any) -> None:
        async def recover(ctx: RequestContext, next: Any) -> Response:
            try:
                return await next()
            except RuntimeError:
                return PlainTextResponse("fallback", status_code=503)

        async def failing() -> Response:
            raise RuntimeError("renderer down")

        response = await sequence(recover)(RequestContext(request=make_request()), failing)
        assert response.status_code == 503
        assert response.body == b"fallback"

    async def test_none_result_raises_missing_response(self, make_request: Any) -> None:
        async def forgetful(ctx: RequestContext, next: Any) -> None:
            await next()

        with pytest.raises(MissingResponseError):
            await sequence(forgetful)(RequestContext(request=make_request()), _terminal([]))

    async def test_non_response_result_raises(self, make_request: Any) -> None:
        async def stringly(ctx: RequestContext, next: Any) -> str:
            return "hello"

        with pytest.raises(InvalidResponseError) as exc_info:
            await sequence(stringly)(RequestContext(request=make_request()), _terminal([]))
        assert exc_info.value.value == "hello"

    async def test_validation_can_be_disabled(self, make_request: Any) -> None:
        async def stringly(ctx: RequestContext, next: Any) -> str:
            return "hello"

        result = await sequence(stringly).run(
            RequestContext(request=make_request()), _terminal([]), validate=False
        )
        assert result == "hello"


class TestSyncHandlers:
    async def test_sync_handler_returning_next(self, make_request: Any, log: list[str]) -> None:
        def passthrough(ctx: RequestContext, next: Any) -> Any:
            ctx.locals["sync"] = True
            return next()

        ctx = RequestContext(request=make_request())
        response = await sequence(passthrough)(ctx, _terminal(log))
        assert response.body == b"rendered"
        assert ctx.locals == {"sync": True}
        assert log == ["render"]

    async def test_sync_handler_short_circuit(self, make_request: Any) -> None:
        def block(ctx: RequestContext, next: Any) -> Response:
            return PlainTextResponse("blocked", status_code=401)

        response = await sequence(block)(RequestContext(request=make_request()), _terminal([]))
        assert response.status_code == 401
