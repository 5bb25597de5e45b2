"""
Syntax-tree rewriting of generator bodies.

``GeneratorRewriter`` walks one function definition and replaces the three
control constructs with calls into :mod:`propane.runtime`:

    yield v   sync: native yield
              async: yield from __propane_rt.async_gen_yield(v)
    try_(e)   sync: yield from __propane_rt.gen_try(e)
              async: yield from __propane_rt.async_gen_try(e)
    await e   sync: rejected
              async: yield from __propane_rt.async_gen_await(__propane_stream_ctx, e)

The rule applied is looked up once per construct from ``(Construct, Mode)``.
Only the first (outer) function is rewritten; nested functions, lambdas and
classes belong to another scope and are returned as they are.
"""

from __future__ import annotations

import ast
import enum
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from frozendict import frozendict

from propane import errors
from propane.captures import parameter_names, unelide_arguments
from propane.errors import ShapeError, TransformError
from propane.signature import synthesize_signature

RUNTIME_NAME = "__propane_rt"
CONTEXT_NAME = "__propane_stream_ctx"
TRY_MARKER = "try_"


class Mode(enum.Enum):
    SYNC = "sync"
    ASYNC = "async"


class Depth(enum.Enum):
    OUTER = "outer"
    NESTED = "nested"


class Construct(enum.Enum):
    EMIT = "emit"
    PROPAGATE = "propagate"
    AWAIT = "await"


@dataclass
class TransformContext:
    """State of one expansion.

    Created fresh for every decorated item and never shared: ``depth`` flips
    to ``NESTED`` as soon as the outer function has been taken, which is what
    keeps nested definitions out of the rewrite.
    """

    depth: Depth = Depth.OUTER
    mode: Mode = Mode.SYNC
    owning: bool = False
    captures: list[str] = field(default_factory=list)
    throws: Any = None
    required_mode: Mode | None = None

    @property
    def is_outermost(self) -> bool:
        return self.depth is Depth.OUTER

    @property
    def is_async(self) -> bool:
        return self.mode is Mode.ASYNC

    @property
    def is_owning(self) -> bool:
        return self.owning


@dataclass(frozen=True)
class FunctionShape:
    """Read-only view of the function being expanded."""

    name: str
    parameters: tuple[str, ...]
    declared_return: ast.expr | None
    body: tuple[ast.stmt, ...]
    is_method: bool
    is_async: bool

    @classmethod
    def from_node(
        cls,
        node: ast.FunctionDef | ast.AsyncFunctionDef,
        qualname: str | None = None,
    ) -> FunctionShape:
        parameters = tuple(parameter_names(node.args))
        if qualname is not None:
            owner = qualname.rpartition(".")[0]
            is_method = bool(owner) and not owner.endswith("<locals>")
        else:
            is_method = bool(parameters) and parameters[0] in ("self", "cls")
        return cls(
            name=node.name,
            parameters=parameters,
            declared_return=node.returns,
            body=tuple(node.body),
            is_method=is_method,
            is_async=isinstance(node, ast.AsyncFunctionDef),
        )


def runtime_attr(name: str) -> ast.Attribute:
    return ast.Attribute(
        value=ast.Name(id=RUNTIME_NAME, ctx=ast.Load()),
        attr=name,
        ctx=ast.Load(),
    )


def _delegate(helper: str, *args: ast.expr) -> ast.YieldFrom:
    return ast.YieldFrom(
        value=ast.Call(func=runtime_attr(helper), args=list(args), keywords=[]),
    )


def _is_try_marker(node: ast.AST) -> bool:
    if not isinstance(node, ast.Call):
        return False
    func = node.func
    if isinstance(func, ast.Name):
        return func.id == TRY_MARKER
    if isinstance(func, ast.Attribute):
        return func.attr == TRY_MARKER
    return False


_SCOPES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda, ast.ClassDef)


def _contains_construct(node: ast.AST) -> bool:
    """True when ``node`` holds a construct in its own scope."""

    for child in ast.iter_child_nodes(node):
        if isinstance(child, _SCOPES):
            continue
        if isinstance(child, (ast.Yield, ast.YieldFrom, ast.Await)) or _is_try_marker(child):
            return True
        if _contains_construct(child):
            return True
    return False


# ---------------------------------------------------------------------------
# Private names
# ---------------------------------------------------------------------------


def private_owner(qualname: str | None) -> str | None:
    """Name of the innermost class enclosing ``qualname``, if any."""

    if qualname is None:
        return None
    parts = qualname.split(".")[:-1]
    while parts:
        part = parts.pop()
        if part == "<locals>":
            # Enclosing function.
            if parts:
                parts.pop()
            continue
        return part
    return None


def mangle(name: str, owner: str) -> str:
    if not name.startswith("__") or name.endswith("__") or "." in name:
        return name
    stripped = owner.lstrip("_")
    if not stripped:
        return name
    return f"_{stripped}{name}"


class PrivateNameMangler(ast.NodeTransformer):
    """Apply class-private name mangling as the compiler does inside ``owner``.

    The rewritten function is compiled outside its class body, so ``__name``
    identifiers have to be mangled before that happens. Nested classes mangle
    their own bodies with their own name.
    """

    def __init__(self, owner: str) -> None:
        self.owner = owner

    def visit_Name(self, node: ast.Name) -> ast.AST:
        node.id = mangle(node.id, self.owner)
        return node

    def visit_Attribute(self, node: ast.Attribute) -> ast.AST:
        self.generic_visit(node)
        node.attr = mangle(node.attr, self.owner)
        return node

    def visit_arg(self, node: ast.arg) -> ast.AST:
        node.arg = mangle(node.arg, self.owner)
        return node

    def visit_keyword(self, node: ast.keyword) -> ast.AST:
        self.generic_visit(node)
        if node.arg is not None:
            node.arg = mangle(node.arg, self.owner)
        return node

    def _visit_declaration(self, node: ast.Global | ast.Nonlocal) -> ast.AST:
        node.names = [mangle(name, self.owner) for name in node.names]
        return node

    visit_Global = _visit_declaration
    visit_Nonlocal = _visit_declaration

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> ast.AST:
        self.generic_visit(node)
        if node.name is not None:
            node.name = mangle(node.name, self.owner)
        return node

    def _visit_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> ast.AST:
        self.generic_visit(node)
        node.name = mangle(node.name, self.owner)
        return node

    visit_FunctionDef = _visit_function
    visit_AsyncFunctionDef = _visit_function

    def visit_ClassDef(self, node: ast.ClassDef) -> ast.AST:
        inner = PrivateNameMangler(node.name)
        node.bases = [self.visit(base) for base in node.bases]
        node.keywords = [self.visit(keyword) for keyword in node.keywords]
        node.decorator_list = [self.visit(decorator) for decorator in node.decorator_list]
        node.body = [inner.visit(statement) for statement in node.body]
        node.name = mangle(node.name, self.owner)
        return node


def mangle_private_names(node: ast.FunctionDef | ast.AsyncFunctionDef, owner: str) -> None:
    """Mangle the parameters and body of ``node``; its own name is left alone."""

    mangler = PrivateNameMangler(owner)
    node.args = mangler.visit(node.args)
    node.body = [mangler.visit(statement) for statement in node.body]


# ---------------------------------------------------------------------------
# Rewrite rules
# ---------------------------------------------------------------------------


def _keep_emit(rewriter: GeneratorRewriter, node: ast.Yield) -> ast.expr:
    return rewriter.generic_visit(node)


def _emit_ready(rewriter: GeneratorRewriter, node: ast.Yield) -> ast.expr:
    value = rewriter.visit(node.value) if node.value is not None else ast.Constant(value=None)
    return _delegate("async_gen_yield", value)


def _propagate(rewriter: GeneratorRewriter, node: ast.Call) -> ast.expr:
    return _delegate("gen_try", rewriter.visit(_try_operand(node)))


def _propagate_ready(rewriter: GeneratorRewriter, node: ast.Call) -> ast.expr:
    return _delegate("async_gen_try", rewriter.visit(_try_operand(node)))


def _reject_await(rewriter: GeneratorRewriter, node: ast.Await) -> ast.expr:
    raise ShapeError(
        errors.AWAIT_IN_SYNC,
        hint="declare the generator with 'async def' to wait on other computations",
        node=node,
    )


def _await_ready(rewriter: GeneratorRewriter, node: ast.Await) -> ast.expr:
    return _delegate(
        "async_gen_await",
        ast.Name(id=CONTEXT_NAME, ctx=ast.Load()),
        rewriter.visit(node.value),
    )


def _declared_text(annotation: ast.expr | None) -> str | None:
    if annotation is None:
        return None
    if isinstance(annotation, ast.Constant) and isinstance(annotation.value, str):
        return annotation.value
    return ast.unparse(annotation)


def _try_operand(node: ast.Call) -> ast.expr:
    if len(node.args) != 1 or node.keywords or isinstance(node.args[0], ast.Starred):
        raise ShapeError(errors.TRY_ARITY, node=node)
    return node.args[0]


Rule = Callable[["GeneratorRewriter", Any], ast.expr]

REWRITE_RULES: frozendict[tuple[Construct, Mode], Rule] = frozendict(
    {
        (Construct.EMIT, Mode.SYNC): _keep_emit,
        (Construct.EMIT, Mode.ASYNC): _emit_ready,
        (Construct.PROPAGATE, Mode.SYNC): _propagate,
        (Construct.PROPAGATE, Mode.ASYNC): _propagate_ready,
        (Construct.AWAIT, Mode.SYNC): _reject_await,
        (Construct.AWAIT, Mode.ASYNC): _await_ready,
    }
)


# ---------------------------------------------------------------------------
# Rewriter
# ---------------------------------------------------------------------------


class GeneratorRewriter(ast.NodeTransformer):
    """Rewrite one function definition under a :class:`TransformContext`."""

    def __init__(self, context: TransformContext, qualname: str | None = None) -> None:
        self.context = context
        self.qualname = qualname
        self.shape: FunctionShape | None = None

    def rewrite(self, node: ast.AST) -> ast.FunctionDef:
        if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            raise TransformError(errors.NOT_A_FUNCTION, node=node)
        if not self.context.is_outermost:
            raise TransformError(errors.CONTEXT_REUSED, node=node)
        return self.visit(node)

    def _apply(self, construct: Construct, node: ast.AST) -> ast.expr:
        return REWRITE_RULES[(construct, self.context.mode)](self, node)

    # -- items -------------------------------------------------------------

    def visit_FunctionDef(self, node: ast.FunctionDef) -> ast.AST:
        if not self.context.is_outermost:
            return node
        return self._expand_outer(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> ast.AST:
        if not self.context.is_outermost:
            return node
        return self._expand_outer(node)

    def visit_Lambda(self, node: ast.Lambda) -> ast.AST:
        return node

    def visit_ClassDef(self, node: ast.ClassDef) -> ast.AST:
        return node

    def _expand_outer(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> ast.FunctionDef:
        from propane.synthesis import function_def, make_fn_block, split_docstring

        context = self.context
        owner = private_owner(self.qualname)
        if owner is not None:
            mangle_private_names(node, owner)
        shape = FunctionShape.from_node(node, self.qualname)
        self.shape = shape

        context.mode = Mode.ASYNC if shape.is_async else Mode.SYNC
        if context.required_mode is not None and context.required_mode is not context.mode:
            expected = "async def" if context.required_mode is Mode.ASYNC else "def"
            raise ShapeError(
                errors.MODE_MISMATCH, hint=f"decorate a parameterless '{expected}'", node=node
            )

        arguments, context.captures = unelide_arguments(node.args)
        declared = _declared_text(shape.declared_return)
        returns = synthesize_signature(context, declared)

        context.depth = Depth.NESTED

        docstring, statements = split_docstring(list(shape.body))
        inner: list[ast.stmt] = []
        for statement in statements:
            rewritten = self.visit(statement)
            if rewritten is None:
                continue
            if isinstance(rewritten, list):
                inner.extend(rewritten)
            else:
                inner.append(rewritten)

        body = make_fn_block(inner, arguments, context.mode)
        if docstring is not None:
            body.insert(0, docstring)

        expanded = function_def(
            name=node.name,
            args=arguments,
            body=body,
            returns=ast.Constant(value=returns),
            type_params=getattr(node, "type_params", None) or [],
        )
        return ast.copy_location(expanded, node)

    # -- constructs --------------------------------------------------------

    def visit_Yield(self, node: ast.Yield) -> ast.AST:
        return ast.copy_location(self._apply(Construct.EMIT, node), node)

    def visit_Await(self, node: ast.Await) -> ast.AST:
        return ast.copy_location(self._apply(Construct.AWAIT, node), node)

    def visit_Call(self, node: ast.Call) -> ast.AST:
        if _is_try_marker(node):
            return ast.copy_location(self._apply(Construct.PROPAGATE, node), node)
        return self.generic_visit(node)

    def visit_YieldFrom(self, node: ast.YieldFrom) -> ast.AST:
        if self.context.is_async:
            raise ShapeError(errors.YIELD_FROM_IN_ASYNC, node=node)
        return self.generic_visit(node)

    def visit_Return(self, node: ast.Return) -> ast.AST:
        if node.value is not None:
            raise ShapeError(
                errors.RETURN_WITH_VALUE,
                hint="use a bare 'return' to end the generator",
                node=node,
            )
        return node

    def visit_AsyncFor(self, node: ast.AsyncFor) -> ast.AST:
        raise ShapeError(errors.ASYNC_FOR_IN_GENERATOR, node=node)

    def visit_AsyncWith(self, node: ast.AsyncWith) -> ast.AST:
        raise ShapeError(errors.ASYNC_WITH_IN_GENERATOR, node=node)

    def _visit_comprehension(self, node: ast.expr) -> ast.AST:
        if _contains_construct(node):
            raise ShapeError(errors.CONSTRUCT_IN_COMPREHENSION, node=node)
        return node

    visit_ListComp = _visit_comprehension
    visit_SetComp = _visit_comprehension
    visit_DictComp = _visit_comprehension
    visit_GeneratorExp = _visit_comprehension


__all__ = [
    "CONTEXT_NAME",
    "Construct",
    "Depth",
    "FunctionShape",
    "GeneratorRewriter",
    "Mode",
    "PrivateNameMangler",
    "REWRITE_RULES",
    "RUNTIME_NAME",
    "TRY_MARKER",
    "TransformContext",
    "mangle",
    "mangle_private_names",
    "private_owner",
]
