"""ChainException hierarchy for setup, lookup and request-time failures."""

from __future__ import annotations


class ChainException(Exception):
    """Base for all handler-chain exceptions."""


class SignatureError(ChainException):
    """A behavior does not match an accepted calling shape (fatal at setup)."""

    def __init__(self, name: str, detail: str) -> None:
        super().__init__(
            f"function {name!r} is not a valid context function: {detail}; "
            "it must accept a leading context argument and return 1 value, "
            "or 1 value and 1 error value"
        )
        self.name = name
        self.detail = detail


class NotFoundError(ChainException):
    """Recoverable lookup failure."""


class KeyNotFound(NotFoundError, KeyError):
    """Unknown key in the per-request store."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Key {key} does not exist.")
        self.key = key

    def __str__(self) -> str:
        return str(self.args[0])


class RouteNotFound(NotFoundError):
    """Unknown route name."""

    def __init__(self, route: str, params: tuple[str, ...] = ()) -> None:
        super().__init__(
            f"unable to get url for route {route} with params {list(params)}"
        )
        self.route = route
        self.params = params


class FunctionNotFound(NotFoundError):
    """Unknown name in a function registry."""

    def __init__(self, name: str) -> None:
        super().__init__(f"no context function named {name!r}")
        self.name = name


class InvalidArgument(ChainException, ValueError):
    """Recoverable bad argument, e.g. a redirect code outside 300..308."""


class FatalKeyAbsence(ChainException):
    """``must_get`` on a missing or ``None`` key; fatal for the current request."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Key {key} doesn't exist")
        self.key = key


class CapabilityUnsupported(ChainException):
    """The underlying response stream lacks an optional capability."""

    def __init__(self, capability: str) -> None:
        super().__init__(f"the response stream doesn't support {capability}")
        self.capability = capability


class TemplateRenderError(ChainException):
    """A templator failed to load or render a template."""

    def __init__(self, detail: str, *, cause: Exception | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.cause = cause


class PoolError(ChainException):
    """A context was returned to a pool that did not lend it."""
