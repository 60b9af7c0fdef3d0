"""RequestContext — per-request state shared by every handler in a chain."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from starlette.datastructures import URL, Headers
from starlette.requests import Request
from starlette.responses import RedirectResponse

if TYPE_CHECKING:
    from fastapi_request_middleware.trace import ChainTrace


@dataclass(eq=False)
class RequestContext:
    """Lightweight per-request container passed by reference through a chain.

    ``locals`` is mutated in place by handlers; rebinding it is detected by
    the dispatcher.
    """

    request: Request
    locals: dict[str, Any] = field(default_factory=dict)
    user: Any | None = None
    extras: dict[str, Any] = field(default_factory=dict)
    trace: ChainTrace | None = None

    @property
    def url(self) -> URL:
        return self.request.url

    @property
    def method(self) -> str:
        return self.request.method

    @property
    def headers(self) -> Headers:
        return self.request.headers

    @property
    def cookies(self) -> dict[str, str]:
        return self.request.cookies

    @property
    def client_host(self) -> str | None:
        client = self.request.client
        return client.host if client is not None else None

    def redirect(self, location: str, status_code: int = 302) -> RedirectResponse:
        """Build a redirect response; return it instead of calling ``next()``."""
        return RedirectResponse(url=location, status_code=status_code)


def create_context(
    request: Request,
    *,
    locals: dict[str, Any] | None = None,  # noqa: A002
    user: Any | None = None,
    **extras: Any,
) -> RequestContext:
    """Build a RequestContext outside the dispatcher, e.g. in tests or custom runtimes.

    A supplied ``locals`` dict is used as-is, not copied.
    """
    if locals is not None and not isinstance(locals, dict):
        raise TypeError(f"locals must be a dict, got {type(locals).__name__}")
    return RequestContext(
        request=request,
        locals={} if locals is None else locals,
        user=user,
        extras=dict(extras),
    )
