from __future__ import annotations

import ast

from propane.captures import ELIDED_ANNOTATION, parameter_names, unelide_arguments


def _arguments(signature: str) -> ast.arguments:
    node = ast.parse(f"def f{signature}:\n    pass\n").body[0]
    assert isinstance(node, ast.FunctionDef)
    return node.args


def _annotations(arguments: ast.arguments) -> dict[str, str]:
    params = [*arguments.posonlyargs, *arguments.args, *arguments.kwonlyargs]
    params += [p for p in (arguments.vararg, arguments.kwarg) if p is not None]
    return {p.arg: p.annotation.value for p in params}


def test_elided_annotations_become_any() -> None:
    normalized, names = unelide_arguments(_arguments("(a, b: int)"))
    assert names == ["a", "b"]
    assert _annotations(normalized) == {"a": ELIDED_ANNOTATION, "b": "int"}


def test_names_follow_declaration_order() -> None:
    arguments = _arguments("(p, /, q, *rest, k, **extra)")
    _, names = unelide_arguments(arguments)
    assert names == ["p", "q", "rest", "k", "extra"]
    assert parameter_names(arguments) == names


def test_explicit_annotations_are_deferred_to_strings() -> None:
    normalized, _ = unelide_arguments(_arguments("(x: list[int], y: 'Config', *a: str)"))
    assert _annotations(normalized) == {"x": "list[int]", "y": "Config", "a": "str"}


def test_input_is_not_mutated() -> None:
    arguments = _arguments("(a, b: int)")
    before = ast.dump(arguments)
    unelide_arguments(arguments)
    assert ast.dump(arguments) == before


def test_normalizing_twice_changes_nothing() -> None:
    once, names_once = unelide_arguments(_arguments("(a, /, b: dict[str, int], *c, d=1, **e)"))
    twice, names_twice = unelide_arguments(once)
    assert ast.dump(twice) == ast.dump(once)
    assert names_twice == names_once


def test_no_parameters() -> None:
    normalized, names = unelide_arguments(_arguments("()"))
    assert names == []
    assert normalized.args == []
