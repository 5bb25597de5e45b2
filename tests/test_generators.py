"""Synchronous generators produced by @generator."""

from __future__ import annotations

import inspect
from typing import Annotated, get_args, get_origin

import pytest

from propane import Borrows, Err, GenIter, NOTHING, Ok, Result, Some, generator, try_


@generator
def foo() -> int:
    for n in range(10):
        yield n


@generator
def result() -> Result[int]:
    def bar() -> Result[None]:
        return Err(None)

    for n in range(5):
        yield Ok(n)

    try_(bar())

    yield Ok(10)  # never reached


@generator
def countdown(start: int, step=1, *, label: str = "n") -> str:
    """Count down to zero."""
    while start > 0:
        yield f"{label}={start}"
        start -= step


@generator
def first_items(*groups, **named):
    for group in groups:
        yield group[0]
    for key in sorted(named):
        yield (key, named[key])


@generator
def parsed(values) -> Result[int]:
    for value in values:
        number = try_(Ok(int(value)) if value.isdigit() else Err(value))
        yield Ok(number * 2)


@generator
def lookups(table, keys) -> object:
    for key in keys:
        yield try_(Some(table[key]) if key in table else NOTHING)


@generator
def nothing_at_all():
    pass


@generator
def only_propagates():
    try_(Err("boom"))


class Foo:
    def __init__(self, value: int | None) -> None:
        self.value = value

    @generator
    def method(self) -> int:
        while self.value is not None:
            n, self.value = self.value, None
            yield n


class Counter:
    def __init__(self, limit: int) -> None:
        self.limit = limit

    def describe(self, n: int) -> str:
        return f"#{n}"

    @generator
    def items(self) -> str:
        for n in range(self.limit):
            yield self.describe(n)


class Base:
    def labels(self) -> list[str]:
        return ["base"]


class Derived(Base):
    @generator
    def labels_iter(self) -> str:
        for label in super().labels():
            yield label
        yield "derived"


class Doc:
    @generator
    def lines(self) -> str:
        text = """first
second"""
        for line in text.splitlines():
            yield line


class Vault:
    def __init__(self, *secrets: str) -> None:
        self.__secrets = list(secrets)

    def __reveal(self, secret: str) -> str:
        return secret.upper()

    @generator
    def items(self, *, __prefix: str = "") -> str:
        for secret in self.__secrets:
            yield __prefix + self.__reveal(secret)


class _Hidden:
    def __init__(self) -> None:
        self.__value = 1

    @generator
    def values(self) -> int:
        yield self.__value


def test_foo() -> None:
    it = foo()
    for n in range(10):
        assert next(it) == n
    assert next(it, None) is None


def test_result() -> None:
    it = result()
    for n in range(5):
        assert next(it) == Ok(n)

    assert next(it) == Err(None)
    assert next(it, None) is None


def test_calling_does_not_run_body() -> None:
    calls: list[str] = []

    @generator
    def noisy():
        calls.append("started")
        yield 1

    it = noisy()
    assert calls == []
    assert next(it) == 1
    assert calls == ["started"]


def test_foo_method() -> None:
    foo = Foo(0)
    it = foo.method()
    assert next(it) == 0
    assert next(it, None) is None


def test_method_sees_other_methods() -> None:
    assert list(Counter(3).items()) == ["#0", "#1", "#2"]


def test_zero_argument_super() -> None:
    assert list(Derived().labels_iter()) == ["base", "derived"]


def test_parameters_can_be_rebound_in_body() -> None:
    assert list(countdown(3)) == ["n=3", "n=2", "n=1"]
    assert list(countdown(6, 2, label="x")) == ["x=6", "x=4", "x=2"]


def test_varargs_and_kwargs() -> None:
    assert list(first_items([1, 2], "ab", b=2, a=1)) == [1, "a", ("a", 1), ("b", 2)]


def test_try_unwraps_ok_values() -> None:
    assert list(parsed(["1", "2"])) == [Ok(2), Ok(4)]
    assert list(parsed(["1", "x", "3"])) == [Ok(2), Err("x")]


def test_try_with_maybe() -> None:
    table = {"a": 1, "b": 2}
    assert list(lookups(table, ["a", "b"])) == [1, 2]
    assert list(lookups(table, ["a", "zz", "b"])) == [1, NOTHING]


def test_empty_body_is_exhausted_immediately() -> None:
    it = nothing_at_all()
    assert isinstance(it, GenIter)
    assert list(it) == []
    assert it.exhausted


def test_body_without_yield_can_still_propagate() -> None:
    assert list(only_propagates()) == [Err("boom")]


def test_exhaustion_is_sticky() -> None:
    it = foo()
    assert list(it) == list(range(10))
    for _ in range(5):
        with pytest.raises(StopIteration):
            next(it)


def test_failure_is_the_last_item() -> None:
    it = result()
    items = list(it)
    assert items[-1] == Err(None)
    assert Ok(10) not in items
    for _ in range(3):
        assert next(it, "done") == "done"


def test_failure_closes_the_body_immediately() -> None:
    events: list[str] = []

    @generator
    def guarded():
        try:
            yield Ok(1)
            try_(Err("stop"))
            yield Ok(2)
        finally:
            events.append("cleanup")

    it = guarded()
    assert next(it) == Ok(1)
    assert events == []
    assert next(it) == Err("stop")
    assert events == ["cleanup"]
    assert next(it, None) is None


def test_exception_in_body_ends_iteration() -> None:
    @generator
    def explodes():
        yield 1
        raise ValueError("boom")

    it = explodes()
    assert next(it) == 1
    with pytest.raises(ValueError, match="boom"):
        next(it)
    assert next(it, None) is None


def test_try_rejects_plain_values() -> None:
    @generator
    def misuse():
        yield try_(42)

    with pytest.raises(TypeError, match="Result or Maybe"):
        next(misuse())


def test_nested_functions_are_not_rewritten() -> None:
    @generator
    def outer():
        def helper():
            return try_(Ok(1))

        yield 0
        yield helper()

    it = outer()
    assert next(it) == 0
    with pytest.raises(RuntimeError, match="try_"):
        next(it)


def test_nested_generator_function_keeps_its_own_yields() -> None:
    @generator
    def outer():
        def inner():
            yield "a"
            yield "b"

        yield from inner()
        yield "c"

    assert list(outer()) == ["a", "b", "c"]


def test_close_runs_finally_blocks() -> None:
    events: list[str] = []

    @generator
    def resource():
        try:
            yield 1
            yield 2
        finally:
            events.append("released")

    with resource() as it:
        assert next(it) == 1
    assert events == ["released"]
    assert next(it, None) is None


def test_dropping_the_iterator_releases_the_body() -> None:
    events: list[str] = []

    @generator
    def resource():
        try:
            yield 1
            yield 2
        finally:
            events.append("released")

    it = resource()
    next(it)
    del it
    assert events == ["released"]


def test_metadata_is_preserved() -> None:
    assert countdown.__name__ == "countdown"
    assert countdown.__doc__ == "Count down to zero."
    assert countdown.__qualname__ == "countdown"
    assert countdown.__defaults__ == (1,)
    assert countdown.__kwdefaults__ == {"label": "n"}
    assert Foo.method.__qualname__ == "Foo.method"


def test_return_annotation_names_borrowed_parameters() -> None:
    annotation = inspect.signature(countdown).return_annotation
    assert get_origin(annotation) is Annotated
    _, borrows = get_args(annotation)
    assert borrows == Borrows("start", "step", "label")


def test_elided_parameter_annotation_becomes_any() -> None:
    from typing import Any

    params = inspect.signature(countdown).parameters
    assert params["step"].annotation is Any
    assert params["start"].annotation == "int"


def test_method_with_multiline_string() -> None:
    assert list(Doc().lines()) == ["first", "second"]


def test_private_names_in_methods() -> None:
    assert list(Vault("a", "b").items()) == ["A", "B"]
    assert list(Vault("c").items(_Vault__prefix="> ")) == ["> C"]


def test_private_names_strip_leading_underscores_of_owner() -> None:
    assert list(_Hidden().values()) == [1]


def test_private_names_in_local_class() -> None:
    class Box:
        def __init__(self) -> None:
            self.__items = [1, 2]

        @generator
        def each(self) -> int:
            yield from self.__items

    assert list(Box().each()) == [1, 2]
