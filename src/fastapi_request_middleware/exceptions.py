"""MiddlewareException hierarchy for engine and configuration errors.

Errors raised by user handlers or the renderer are not part of this
hierarchy: they propagate to the dispatcher's caller unchanged.
"""

from __future__ import annotations


class MiddlewareException(Exception):
    """Base for all engine exceptions."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class LocalsOverwriteError(MiddlewareException):
    """A handler replaced ``ctx.locals`` instead of mutating it."""

    def __init__(self, handler_name: str | None = None) -> None:
        if handler_name is None:
            detail = "ctx.locals cannot be reassigned; mutate its contents instead"
        else:
            detail = (
                f"{handler_name} reassigned ctx.locals; "
                "mutate its contents instead"
            )
        super().__init__(detail)
        self.handler_name = handler_name


class SerializationError(MiddlewareException):
    """Locals could not be represented as a string."""

    def __init__(self, detail: str, *, path: str | None = None) -> None:
        super().__init__(detail)
        self.path = path


class MiddlewareNotFoundError(MiddlewareException):
    """The ``on_request`` entry point could not be resolved."""


class InvalidResponseError(MiddlewareException):
    """A handler or the renderer produced something other than a Response."""

    def __init__(self, handler_name: str, value: object) -> None:
        super().__init__(
            f"{handler_name} returned {type(value).__name__}, expected a Response"
        )
        self.handler_name = handler_name
        self.value = value


class MissingResponseError(InvalidResponseError):
    """A handler returned nothing and did not return the result of ``next()``."""

    def __init__(self, handler_name: str) -> None:
        MiddlewareException.__init__(
            self,
            f"{handler_name} returned no response; "
            "return a Response or the result of next()",
        )
        self.handler_name = handler_name
        self.value = None


class ContextNotFoundError(MiddlewareException):
    """No RequestContext is attached to the request."""

    def __init__(
        self, detail: str = "No request context; is LocalsMiddleware installed?"
    ) -> None:
        super().__init__(detail)
