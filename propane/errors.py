"""
Errors raised while turning a function into a generator.

Everything here is raised at decoration time, before any item is produced.
The message constants below are the fixed texts; call sites add a hint and,
when they have one, the syntax node whose line number is reported.
"""

from __future__ import annotations

import ast


class TransformError(Exception):
    """Raised when an item cannot be expanded into a generator.

    Expansion is all-or-nothing: when this is raised nothing was produced.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        node: ast.AST | None = None,
    ) -> None:
        self.message = message
        self.hint = hint
        self.lineno: int | None = getattr(node, "lineno", None)
        text = message
        if hint:
            text = f"{message}\nHint: {hint}"
        super().__init__(text)


class ShapeError(TransformError):
    """A control construct appeared where the generator's mode cannot host it."""


class ConfigurationError(TransformError):
    """The entry point was given an option it does not recognise or cannot honour."""


NOT_A_FUNCTION = "@generator can only be applied to functions"
SOURCE_UNAVAILABLE = "could not retrieve the source of the decorated function"
SOURCE_UNPARSABLE = "the module defining the decorated function could not be parsed"
AWAIT_IN_SYNC = "'await' can only be used in an async generator"
RETURN_WITH_VALUE = "generators cannot return a value"
CONSTRUCT_IN_COMPREHENSION = (
    "yield, await and try_() cannot be used inside a comprehension of a generator"
)
YIELD_FROM_IN_ASYNC = "'yield from' cannot be used in an async generator"
ASYNC_FOR_IN_GENERATOR = "'async for' is not supported in generators"
ASYNC_WITH_IN_GENERATOR = "'async with' is not supported in generators"
TRY_ARITY = "try_() takes exactly one positional argument"
MODE_MISMATCH = "block entry point does not match the kind of the decorated function"
BLOCK_PARAMETERS = "generator blocks cannot take parameters"
CONTEXT_REUSED = "a transform context expands exactly one item"
UNKNOWN_OPTION = "unrecognized @generator option"
FALLIBLE_DISABLED = "the 'throws' option requires the fallible capability"


__all__ = [
    "ConfigurationError",
    "ShapeError",
    "TransformError",
]
