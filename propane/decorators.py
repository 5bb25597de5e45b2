"""
Entry points that turn direct-style functions into generators.

``@generator`` rewrites a named function or method::

    @generator
    def numbers(limit: int) -> int:
        for n in range(limit):
            yield n

    list(numbers(3))  # [0, 1, 2]

Inside the body ``yield`` produces an item, ``try_(result)`` unwraps an
``Ok``/``Some`` or produces the ``Err``/``Nothing`` as the last item, and, in
an ``async def``, ``await`` waits on another computation. Calling the
decorated function returns a ``GenIter`` (``def``) or a ``GenStream``
(``async def``) without running any of the body.

The block entry points rewrite a parameterless function and hand back the
adapter straight away, standing in for an anonymous generator::

    @gen
    def evens():
        for n in range(10):
            if n % 2 == 0:
                yield n

    # evens is a GenIter

``gen``/``async_gen`` share the variables they read from the enclosing scope;
``gen_move``/``async_gen_move`` take their own copy of them at construction
time, so later rebinding in the enclosing scope is not observed.
"""

from __future__ import annotations

import inspect
import types
from collections.abc import Callable, Mapping
from typing import Any, TypeVar, overload

from propane import errors
from propane.config import current_settings
from propane.errors import ConfigurationError, ShapeError, TransformError
from propane.expand import expand_item, load_function_def
from propane.rewriter import Mode, TransformContext
from propane.runtime import GenIter, GenStream
from propane.synthesis import materialize

F = TypeVar("F", bound=Callable[..., Any])

RECOGNIZED_OPTIONS = frozenset({"throws"})


def make_context(options: Mapping[str, Any]) -> TransformContext:
    """Validate ``@generator`` options and build a fresh context for one item."""

    unknown = sorted(set(options) - RECOGNIZED_OPTIONS)
    if unknown:
        raise ConfigurationError(
            errors.UNKNOWN_OPTION,
            hint=f"got {', '.join(repr(name) for name in unknown)}; the only option is 'throws'",
        )

    throws = options.get("throws")
    if throws is not None and not current_settings().fallible:
        raise ConfigurationError(
            errors.FALLIBLE_DISABLED,
            hint="set PROPANE_FALLIBLE=1 to enable it",
        )
    return TransformContext(throws=throws)


def _ensure_function(func: Any) -> types.FunctionType:
    if not inspect.isfunction(func) or func.__name__ == "<lambda>":
        raise TransformError(
            errors.NOT_A_FUNCTION,
            hint="apply @generator directly to a 'def' or 'async def', below other decorators",
        )
    return func


def _transform(func: Any, context: TransformContext) -> types.FunctionType:
    func = _ensure_function(func)
    node = load_function_def(func)
    expansion = expand_item(node, context, qualname=func.__qualname__)
    return materialize(func, expansion.node, context)


@overload
def generator(func: F, /) -> F: ...


@overload
def generator(func: None = None, /, **options: Any) -> Callable[[F], F]: ...


def generator(func: Any = None, /, **options: Any) -> Any:
    """Rewrite ``func`` into a function returning a ``GenIter`` or ``GenStream``.

    Usable bare (``@generator``) or with options (``@generator(throws=...)``).
    ``throws`` is passed through to the synthesized signature as ``Throws``
    metadata and requires the fallible capability (``PROPANE_FALLIBLE``).
    Unknown options raise ``ConfigurationError`` at decoration time.
    """

    if func is None:
        make_context(options)

        def decorate(target: F) -> F:
            return _transform(target, make_context(options))

        return decorate

    return _transform(func, make_context(options))


def _block(func: Any, mode: Mode, *, owning: bool) -> Any:
    func = _ensure_function(func)
    if func.__code__.co_argcount or func.__code__.co_kwonlyargcount or (
        func.__code__.co_flags & (inspect.CO_VARARGS | inspect.CO_VARKEYWORDS)
    ):
        raise ShapeError(errors.BLOCK_PARAMETERS)
    context = TransformContext(owning=owning, required_mode=mode)
    return _transform(func, context)()


def gen(func: Callable[[], Any]) -> GenIter[Any]:
    """Anonymous generator sharing the enclosing scope's variables."""

    return _block(func, Mode.SYNC, owning=False)


def gen_move(func: Callable[[], Any]) -> GenIter[Any]:
    """Anonymous generator owning a snapshot of the enclosing scope's variables."""

    return _block(func, Mode.SYNC, owning=True)


def async_gen(func: Callable[[], Any]) -> GenStream[Any]:
    """Anonymous stream sharing the enclosing scope's variables."""

    return _block(func, Mode.ASYNC, owning=False)


def async_gen_move(func: Callable[[], Any]) -> GenStream[Any]:
    """Anonymous stream owning a snapshot of the enclosing scope's variables."""

    return _block(func, Mode.ASYNC, owning=True)


__all__ = [
    "RECOGNIZED_OPTIONS",
    "async_gen",
    "async_gen_move",
    "gen",
    "gen_move",
    "generator",
    "make_context",
]
