"""Source-level expansion of generator items."""

from __future__ import annotations

import ast
import inspect
import linecache
import textwrap
import types
from dataclasses import dataclass
from typing import Any

from loguru import logger

from propane import errors
from propane.config import Settings, current_settings
from propane.errors import TransformError
from propane.rewriter import GeneratorRewriter, Mode, TransformContext

logger = logger.bind(component="propane")


@dataclass
class ExpansionResult:
    """Result of expanding one item."""

    node: ast.FunctionDef
    source: str
    mode: Mode
    parameters: tuple[str, ...]
    is_method: bool


def expand_item(
    node: ast.AST,
    context: TransformContext,
    *,
    qualname: str | None = None,
    settings: Settings | None = None,
) -> ExpansionResult:
    """Run the rewriter over ``node`` and describe what came out."""

    if settings is None:
        settings = current_settings()

    rewriter = GeneratorRewriter(context, qualname=qualname)
    expanded = rewriter.rewrite(node)
    ast.fix_missing_locations(expanded)
    shape = rewriter.shape
    if shape is None:
        raise TransformError(errors.NOT_A_FUNCTION, node=node)

    source = ast.unparse(expanded)
    logger.debug(
        "expanded {} as {} generator ({} parameters)",
        qualname or shape.name,
        context.mode.value,
        len(shape.parameters),
    )
    if settings.debug:
        logger.debug("expansion of {}:\n{}", qualname or shape.name, source)

    return ExpansionResult(
        node=expanded,
        source=source,
        mode=context.mode,
        parameters=shape.parameters,
        is_method=shape.is_method,
    )


def expand_source(source: str, *, throws: Any = None) -> ExpansionResult:
    """Expand the first item of ``source`` as ``@generator`` would.

    ``throws`` mirrors the decorator option and is subject to the same
    capability check.
    """

    from propane.decorators import make_context

    tree = ast.parse(textwrap.dedent(source), mode="exec")
    if not tree.body:
        raise TransformError(errors.NOT_A_FUNCTION)
    options = {} if throws is None else {"throws": throws}
    return expand_item(tree.body[0], make_context(options))


def _first_line(node: ast.FunctionDef | ast.AsyncFunctionDef) -> int:
    return min([node.lineno, *(decorator.lineno for decorator in node.decorator_list)])


def load_function_def(func: types.FunctionType) -> ast.FunctionDef | ast.AsyncFunctionDef:
    """Find the definition of ``func`` in the source of its module.

    The whole file is parsed, so the returned node carries the file's own line
    numbers and indentation never has to be undone.
    """

    code = func.__code__
    try:
        filename = inspect.getsourcefile(func)
    except TypeError:
        filename = None
    if filename:
        linecache.checkcache(filename)
    lines = linecache.getlines(filename, func.__globals__) if filename else []
    if not lines:
        raise TransformError(
            errors.SOURCE_UNAVAILABLE,
            hint="define the function in a module file rather than an interactive session",
        )

    try:
        tree = ast.parse("".join(lines), filename=filename, mode="exec")
    except SyntaxError as exc:
        raise TransformError(
            errors.SOURCE_UNPARSABLE,
            hint=f"{filename}:{exc.lineno}: {exc.msg}",
        ) from exc

    for node in ast.walk(tree):
        if (
            isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef))
            and node.name == code.co_name
            and _first_line(node) == code.co_firstlineno
        ):
            return node

    raise TransformError(
        errors.SOURCE_UNAVAILABLE,
        hint=f"no definition of {func.__qualname__!r} at {filename}:{code.co_firstlineno}",
    )


__all__ = [
    "ExpansionResult",
    "expand_item",
    "expand_source",
    "load_function_def",
]
