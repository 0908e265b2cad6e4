"""Named function registry - validated, immutable tables of context behaviors."""

from __future__ import annotations

import inspect
import types
import typing
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple

from handler_chain._types import Behavior
from handler_chain.exceptions import FunctionNotFound, SignatureError

_POSITIONAL = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


class FunctionShape(Enum):
    """Accepted calling shapes for a context behavior."""

    SINGLE = "single"  # (ctx, *args) -> value
    PAIR = "pair"  # (ctx, *args) -> (value, error)


class CallResult(NamedTuple):
    value: Any
    error: Exception | None


@dataclass(frozen=True)
class NamedFunction:
    """A behavior whose calling shape was checked at registration."""

    name: str
    func: Behavior
    shape: FunctionShape

    async def invoke(self, *args: Any) -> CallResult:
        result = self.func(*args)
        if inspect.isawaitable(result):
            result = await result
        if self.shape is FunctionShape.SINGLE:
            return CallResult(result, None)
        if not isinstance(result, tuple) or len(result) != 2:
            raise SignatureError(
                self.name, f"returned {type(result).__name__}, not (value, error)"
            )
        value, error = result
        return CallResult(value, error)


def validate_function(
    name: str, func: Any, shape: FunctionShape | None = None
) -> NamedFunction:
    """Check ``func`` against the accepted shapes and wrap it.

    Without an explicit ``shape`` the return annotation decides: a 2-tuple
    whose second member is an exception type (optionally ``| None``) is a
    PAIR, any other tuple of fixed length is rejected, everything else is a
    SINGLE.
    """
    if isinstance(func, NamedFunction):
        shape = shape or func.shape
        func = func.func
    if not callable(func) or inspect.isclass(func):
        raise SignatureError(name, f"{func!r} is not a function")

    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError) as exc:
        raise SignatureError(name, "its signature cannot be inspected") from exc

    params = signature.parameters.values()
    if not any(
        p.kind in _POSITIONAL or p.kind is inspect.Parameter.VAR_POSITIONAL
        for p in params
    ):
        raise SignatureError(name, "it takes no leading context argument")

    if shape is None:
        shape = _return_shape(name, func)
    return NamedFunction(name=name, func=func, shape=shape)


def _return_shape(name: str, func: Any) -> FunctionShape:
    target = _return_target(func)
    if not (inspect.isfunction(target) or inspect.ismethod(target)):
        return FunctionShape.SINGLE

    returns = inspect.signature(target).return_annotation
    if isinstance(returns, str):
        returns = _resolve_return(name, target, returns)

    if typing.get_origin(returns) is not tuple:
        return FunctionShape.SINGLE

    members = typing.get_args(returns)
    if not members or (len(members) == 2 and members[1] is Ellipsis):
        # variable-length tuple is one value
        return FunctionShape.SINGLE
    if len(members) != 2:
        raise SignatureError(name, f"it returns {len(members)} values")
    if not _is_error_type(members[1]):
        raise SignatureError(name, "its second return value is not an error type")
    return FunctionShape.PAIR


def _return_target(func: Any) -> Any:
    return func if inspect.isroutine(func) else getattr(func, "__call__", None)


def _has_return_annotation(func: Any) -> bool:
    target = _return_target(func)
    try:
        returns = inspect.signature(target).return_annotation
    except (TypeError, ValueError):
        return False
    return returns is not inspect.Signature.empty


def _resolve_return(name: str, target: Any, returns: str) -> Any:
    # only the return annotation is resolved; parameter names may be
    # TYPE_CHECKING-only imports
    holder = types.SimpleNamespace(
        __annotations__={"return": returns},
        __globals__=getattr(target, "__globals__", {}),
    )
    try:
        return typing.get_type_hints(holder)["return"]
    except NameError as exc:
        if returns.replace(" ", "").lower().startswith(("tuple[", "typing.tuple[")):
            raise SignatureError(
                name, f"its return annotation cannot be resolved ({exc})"
            ) from exc
        return None
    except (AttributeError, SyntaxError, TypeError) as exc:
        raise SignatureError(
            name, f"its return annotation cannot be resolved ({exc})"
        ) from exc


def _is_error_type(annotation: Any) -> bool:
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        candidates = typing.get_args(annotation)
    else:
        candidates = (annotation,)
    errors = [c for c in candidates if c is not type(None)]
    return bool(errors) and all(
        isinstance(c, type) and issubclass(c, BaseException) for c in errors
    )


class FunctionRegistry(Mapping[str, NamedFunction]):
    """Immutable name -> NamedFunction table.

    Every mutation returns a new registry, so a snapshot held by a request
    context never changes underneath it.
    """

    __slots__ = ("_functions",)

    def __init__(self, functions: Mapping[str, NamedFunction] | None = None) -> None:
        self._functions: Mapping[str, NamedFunction] = types.MappingProxyType(
            dict(functions or {})
        )

    @classmethod
    def from_callables(cls, callables: Mapping[str, Any]) -> FunctionRegistry:
        return cls().register_many(callables)

    def __getitem__(self, name: str) -> NamedFunction:
        return self._functions[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._functions)

    def __len__(self) -> int:
        return len(self._functions)

    def register(
        self, name: str, func: Any, shape: FunctionShape | None = None
    ) -> FunctionRegistry:
        """Return a copy with ``name`` bound to ``func``, replacing any prior entry.

        An unannotated ``func`` inherits the shape of the entry it replaces.
        """
        named = validate_function(name, func, shape or self._inherited_shape(name, func))
        return FunctionRegistry({**self._functions, name: named})

    def register_many(self, callables: Mapping[str, Any]) -> FunctionRegistry:
        validated = {
            name: validate_function(name, func, self._inherited_shape(name, func))
            for name, func in callables.items()
        }
        return FunctionRegistry({**self._functions, **validated})

    def _inherited_shape(self, name: str, func: Any) -> FunctionShape | None:
        if isinstance(func, NamedFunction):
            return func.shape
        current = self._functions.get(name)
        if current is None or _has_return_annotation(func):
            return None
        return current.shape

    def resolve(self, name: str) -> NamedFunction:
        try:
            return self._functions[name]
        except KeyError:
            raise FunctionNotFound(name) from None

    def merge(self, *others: Mapping[str, NamedFunction]) -> FunctionRegistry:
        return merge_registries(self, *others)

    def __repr__(self) -> str:
        return f"FunctionRegistry({sorted(self._functions)})"


def merge_registries(*registries: Mapping[str, NamedFunction]) -> FunctionRegistry:
    """Combine registries into a new one; later registries win on name clashes."""
    merged: dict[str, NamedFunction] = {}
    for registry in registries:
        merged.update(registry)
    return FunctionRegistry(merged)
