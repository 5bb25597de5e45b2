"""
Block synthesis: turning a rewritten body into a callable.

``make_fn_block`` builds the body of the emitted function. The rewritten
statements go into an inner generator that takes the same parameters, and the
function returns that generator wrapped in its adapter:

    def numbers(limit):
        def __propane_body(limit):
            ...rewritten body...
            return
            yield
        return __propane_rt.GenIter(__propane_body(limit))

The trailing ``return; yield`` never runs. It makes ``__propane_body`` a
generator even when the body never suspends.

``materialize`` compiles such a definition back into a function object that
lives in the original module, sees the original closure and keeps the
original defaults.
"""

from __future__ import annotations

import __future__
import ast
import copy
import functools
import operator
import types
from typing import Any

from propane import runtime
from propane.captures import parameter_names
from propane.rewriter import (
    CONTEXT_NAME,
    RUNTIME_NAME,
    Mode,
    TransformContext,
    runtime_attr,
)
from propane.signature import synthesize_return_type

BODY_NAME = "__propane_body"
FACTORY_NAME = "__propane_factory"

_FUTURE_FLAGS = functools.reduce(
    operator.or_,
    (getattr(__future__, feature).compiler_flag for feature in __future__.all_feature_names),
    0,
)


def function_def(
    *,
    name: str,
    args: ast.arguments,
    body: list[ast.stmt],
    returns: ast.expr | None = None,
    type_params: list[Any] | None = None,
) -> ast.FunctionDef:
    fields: dict[str, Any] = {
        "name": name,
        "args": args,
        "body": body,
        "decorator_list": [],
        "returns": returns,
        "type_comment": None,
    }
    if "type_params" in ast.FunctionDef._fields:
        fields["type_params"] = type_params or []
    return ast.FunctionDef(**fields)


def _plain_arguments(names: list[str]) -> ast.arguments:
    return ast.arguments(
        posonlyargs=[],
        args=[ast.arg(arg=name) for name in names],
        vararg=None,
        kwonlyargs=[],
        kw_defaults=[],
        kwarg=None,
        defaults=[],
    )


def split_docstring(body: list[ast.stmt]) -> tuple[ast.stmt | None, list[ast.stmt]]:
    if (
        body
        and isinstance(body[0], ast.Expr)
        and isinstance(body[0].value, ast.Constant)
        and isinstance(body[0].value.value, str)
    ):
        return body[0], body[1:]
    return None, body


def _forwarded_parameters(arguments: ast.arguments) -> ast.arguments:
    """Same parameters, without annotations or defaults."""

    forwarded = copy.deepcopy(arguments)
    for param in (
        *forwarded.posonlyargs,
        *forwarded.args,
        *forwarded.kwonlyargs,
        forwarded.vararg,
        forwarded.kwarg,
    ):
        if param is not None:
            param.annotation = None
    forwarded.defaults = []
    forwarded.kw_defaults = [None] * len(forwarded.kwonlyargs)
    return forwarded


def _forwarding_call(arguments: ast.arguments) -> ast.Call:
    args: list[ast.expr] = [
        ast.Name(id=param.arg, ctx=ast.Load())
        for param in (*arguments.posonlyargs, *arguments.args)
    ]
    if arguments.vararg is not None:
        args.append(
            ast.Starred(value=ast.Name(id=arguments.vararg.arg, ctx=ast.Load()), ctx=ast.Load())
        )
    keywords = [
        ast.keyword(arg=param.arg, value=ast.Name(id=param.arg, ctx=ast.Load()))
        for param in arguments.kwonlyargs
    ]
    if arguments.kwarg is not None:
        keywords.append(ast.keyword(arg=None, value=ast.Name(id=arguments.kwarg.arg, ctx=ast.Load())))
    return ast.Call(func=ast.Name(id=BODY_NAME, ctx=ast.Load()), args=args, keywords=keywords)


def make_fn_block(inner: list[ast.stmt], arguments: ast.arguments, mode: Mode) -> list[ast.stmt]:
    """Wrap ``inner`` in a generator literal and return it through its adapter."""

    terminal: list[ast.stmt] = [ast.Return(value=None), ast.Expr(value=ast.Yield(value=None))]
    body_def = function_def(
        name=BODY_NAME,
        args=_forwarded_parameters(arguments),
        body=[*inner, *terminal],
    )
    computation = _forwarding_call(arguments)

    if mode is Mode.SYNC:
        return [
            body_def,
            ast.Return(
                value=ast.Call(func=runtime_attr("GenIter"), args=[computation], keywords=[])
            ),
        ]

    return [
        ast.Assign(
            targets=[ast.Name(id=CONTEXT_NAME, ctx=ast.Store())],
            value=ast.Call(func=runtime_attr("ContextCell"), args=[], keywords=[]),
        ),
        body_def,
        ast.Return(
            value=ast.Call(
                func=runtime_attr("GenStream"),
                args=[computation, ast.Name(id=CONTEXT_NAME, ctx=ast.Load())],
                keywords=[],
            )
        ),
    ]


# ---------------------------------------------------------------------------
# Materialisation
# ---------------------------------------------------------------------------


def _detach_defaults(arguments: ast.arguments) -> None:
    # Defaults were evaluated once already; the originals are rebound below.
    arguments.defaults = [ast.Constant(value=None) for _ in arguments.defaults]
    arguments.kw_defaults = [
        None if default is None else ast.Constant(value=None)
        for default in arguments.kw_defaults
    ]


def _snapshot(cell: types.CellType) -> types.CellType:
    try:
        return types.CellType(cell.cell_contents)
    except ValueError:
        # Variable not bound yet in the enclosing scope.
        return types.CellType()


def _closure_cells(func: types.FunctionType, *, owning: bool) -> dict[str, types.CellType]:
    """Original closure by name; owning blocks get their own copies of the cells."""

    cells = dict(zip(func.__code__.co_freevars, func.__closure__ or ()))
    if owning:
        return {name: _snapshot(cell) for name, cell in cells.items()}
    return cells


def _original_annotations(func: types.FunctionType) -> dict[str, Any]:
    try:
        return dict(func.__annotations__)
    except NameError:
        # Deferred annotations that refer to names not defined yet.
        return {}


def materialize(
    func: types.FunctionType,
    expanded: ast.FunctionDef,
    context: TransformContext,
) -> types.FunctionType:
    """Compile ``expanded`` into a function standing in for ``func``."""

    code = func.__code__
    freevars = list(code.co_freevars)
    names = parameter_names(expanded.args)

    expanded = copy.deepcopy(expanded)
    _detach_defaults(expanded.args)
    factory = function_def(
        name=FACTORY_NAME,
        args=_plain_arguments([RUNTIME_NAME, *freevars]),
        body=[expanded, ast.Return(value=ast.Name(id=expanded.name, ctx=ast.Load()))],
    )
    module = ast.Module(body=[factory], type_ignores=[])
    ast.fix_missing_locations(module)

    compiled = compile(
        module,
        code.co_filename,
        "exec",
        flags=code.co_flags & _FUTURE_FLAGS,
        dont_inherit=True,
    )
    namespace: dict[str, Any] = {}
    exec(compiled, func.__globals__, namespace)
    template = namespace[FACTORY_NAME](runtime, *(None for _ in freevars))

    cells = _closure_cells(func, owning=context.is_owning)
    cells[RUNTIME_NAME] = types.CellType(runtime)
    closure = tuple(cells[name] for name in template.__code__.co_freevars)

    built = types.FunctionType(
        template.__code__,
        func.__globals__,
        func.__name__,
        func.__defaults__,
        closure or None,
    )
    built.__kwdefaults__ = dict(func.__kwdefaults__) if func.__kwdefaults__ else None

    for attr in ("__doc__", "__module__", "__qualname__", "__type_params__"):
        value = getattr(func, attr, None)
        if value is not None:
            setattr(built, attr, value)
    built.__dict__.update(func.__dict__)

    original = _original_annotations(func)
    annotations: dict[str, Any] = {name: original.get(name, Any) for name in names}
    annotations["return"] = synthesize_return_type(
        original.get("return"), names, context.mode, context.throws
    )
    built.__annotations__ = annotations

    built.__propane_original__ = func  # type: ignore[attr-defined]
    if context.throws is not None:
        built.__propane_throws__ = context.throws  # type: ignore[attr-defined]
    return built


__all__ = [
    "BODY_NAME",
    "function_def",
    "make_fn_block",
    "materialize",
    "split_docstring",
]
