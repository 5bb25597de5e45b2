"""
Parameter normalisation for generator signatures.

A generator returned from a call keeps its arguments alive for as long as it
is iterated, so its signature has to say which names it holds on to. This
module makes every parameter explicit: elided annotations become ``"Any"``,
explicit ones are deferred to their string form, and the parameter names are
reported in declaration order.
"""

from __future__ import annotations

import ast
import copy

ELIDED_ANNOTATION = "Any"


def _explicit(annotation: ast.expr | None) -> ast.expr:
    if annotation is None:
        return ast.Constant(value=ELIDED_ANNOTATION)
    if isinstance(annotation, ast.Constant) and isinstance(annotation.value, str):
        return annotation
    return ast.copy_location(ast.Constant(value=ast.unparse(annotation)), annotation)


def _parameters(arguments: ast.arguments) -> list[ast.arg]:
    params = [*arguments.posonlyargs, *arguments.args]
    if arguments.vararg is not None:
        params.append(arguments.vararg)
    params.extend(arguments.kwonlyargs)
    if arguments.kwarg is not None:
        params.append(arguments.kwarg)
    return params


def parameter_names(arguments: ast.arguments) -> list[str]:
    return [param.arg for param in _parameters(arguments)]


def unelide_arguments(arguments: ast.arguments) -> tuple[ast.arguments, list[str]]:
    """Return a copy of ``arguments`` with every annotation explicit, plus the names.

    Running this on its own output changes nothing and reports the same names.
    """

    normalized = copy.deepcopy(arguments)
    for param in _parameters(normalized):
        param.annotation = _explicit(param.annotation)
    return normalized, parameter_names(normalized)


__all__ = [
    "ELIDED_ANNOTATION",
    "parameter_names",
    "unelide_arguments",
]
