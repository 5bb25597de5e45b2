"""
Return types of rewritten generators.

A generator declared as ``def numbers() -> int`` really returns an iterator of
``int`` that borrows its arguments. The synthesized type says both:

    Annotated[Iterator[int], Borrows("limit")]

Async generators get ``Stream`` instead of ``Iterator``. When the ``throws``
option is in effect its tokens ride along untouched as ``Throws(...)``.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated, Any

from propane.poll import Stream

if TYPE_CHECKING:
    from propane.rewriter import Mode, TransformContext


@dataclass(frozen=True)
class Borrows:
    """Names the returned sequence keeps alive."""

    names: tuple[str, ...]

    def __init__(self, *names: str) -> None:
        object.__setattr__(self, "names", tuple(names))

    def __repr__(self) -> str:
        return f"Borrows({', '.join(repr(name) for name in self.names)})"


@dataclass(frozen=True)
class Throws:
    """Error-wrapping directive passed through from ``@generator(throws=...)``."""

    tokens: Any

    def __repr__(self) -> str:
        return f"Throws({_render_tokens(self.tokens)})"


def _render_tokens(tokens: Any) -> str:
    if isinstance(tokens, str):
        return tokens
    if isinstance(tokens, tuple):
        return ", ".join(_render_tokens(token) for token in tokens)
    return getattr(tokens, "__qualname__", None) or repr(tokens)


def _is_async(mode: Mode) -> bool:
    from propane.rewriter import Mode

    return mode is Mode.ASYNC


def synthesize_return_type(
    declared: Any,
    borrows: Sequence[str],
    mode: Mode,
    throws: Any = None,
) -> Any:
    """Build the annotation object for a rewritten generator.

    ``declared`` is the item type as written (an object or a forward-reference
    string); ``None`` stands for the implicit unit type.
    """

    sequence = Stream[declared] if _is_async(mode) else Iterator[declared]
    metadata: list[Any] = [Borrows(*borrows)]
    if throws is not None:
        metadata.append(Throws(throws))
    return Annotated[(sequence, *metadata)]


def format_return_type(
    declared: str | None,
    borrows: Sequence[str],
    mode: Mode,
    throws: Any = None,
) -> str:
    """Source-text form of :func:`synthesize_return_type`."""

    item = "None" if declared is None else declared
    sequence = "Stream" if _is_async(mode) else "Iterator"
    parts = [f"{sequence}[{item}]", repr(Borrows(*borrows))]
    if throws is not None:
        parts.append(repr(Throws(throws)))
    return f"Annotated[{', '.join(parts)}]"


def synthesize_signature(context: TransformContext, declared: str | None) -> str:
    """Render the return type for the item under ``context`` and release its captures.

    The captures belong to one signature only; they are cleared here so a
    second synthesis cannot pick them up again.
    """

    rendered = format_return_type(declared, context.captures, context.mode, context.throws)
    context.captures = []
    return rendered


__all__ = [
    "Borrows",
    "Throws",
    "format_return_type",
    "synthesize_return_type",
    "synthesize_signature",
]
