"""
Success/failure carriers understood by ``try_``.

``Result`` (``Ok``/``Err``) and ``Maybe`` (``Some``/``Nothing``) are the two
shapes the early-exit operator knows how to split. ``branch`` is that split:
it answers whether a value continues the computation or short-circuits it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Final, Generic, NoReturn, TypeVar, cast

# =========================================================
# Type Vars
# =========================================================
T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)
U = TypeVar("U")


class Result(Generic[T_co]):
    """Sum type representing either a successful value or an error."""

    __slots__ = ()

    def is_ok(self) -> bool:
        """Return ``True`` when the result is successful."""

        return isinstance(self, Ok)

    def is_err(self) -> bool:
        """Return ``True`` when the result represents a failure."""

        return isinstance(self, Err)

    def ok(self) -> T_co | None:
        """Return the contained value, or ``None`` if this is an error."""

        if isinstance(self, Ok):
            return self.value
        return None

    def err(self) -> Any:
        """Return the contained error, or ``None`` if this is a success."""

        if isinstance(self, Err):
            return self.error
        return None

    def expect(self, message: str) -> T_co:
        """Return the value or raise ``RuntimeError`` with ``message``."""

        if isinstance(self, Ok):
            return self.value

        error = cast(Err, self).error
        if isinstance(error, BaseException):
            raise RuntimeError(f"{message}: {error}") from error
        raise RuntimeError(f"{message}: {error!r}")

    def unwrap(self) -> T_co:
        """Return the value, or raise the stored error when it is an exception."""

        if isinstance(self, Ok):
            return self.value

        error = cast(Err, self).error
        if isinstance(error, BaseException):
            raise error
        raise RuntimeError(f"Called unwrap on Err value: {error!r}")

    def unwrap_err(self) -> Any:
        """Return the error or raise ``RuntimeError`` if this is a success."""

        if isinstance(self, Err):
            return self.error
        raise RuntimeError("Called unwrap_err on Ok value")

    def map(self, f: Callable[[T_co], U]) -> Result[U]:
        """Apply ``f`` to the contained value if this is a success."""

        if isinstance(self, Ok):
            return Ok(f(self.value))
        return cast(Result[U], self)

    def map_err(self, f: Callable[[Any], Any]) -> Result[T_co]:
        """Apply ``f`` to the contained error if this is a failure."""

        if isinstance(self, Err):
            return Err(f(self.error))
        return self

    def unwrap_or(self, default: U) -> T_co | U:
        """Return the contained value, or ``default`` if this is an error."""

        if isinstance(self, Ok):
            return self.value
        return default

    def unwrap_or_else(self, default_fn: Callable[[Any], U]) -> T_co | U:
        """Return the contained value, or compute a default from the error."""

        if isinstance(self, Ok):
            return self.value
        return default_fn(cast(Err, self).error)

    def and_then(self, f: Callable[[T_co], Result[U]]) -> Result[U]:
        """Chain computations that return ``Result``."""

        if isinstance(self, Ok):
            result = f(self.value)
            if not isinstance(result, Result):
                raise TypeError("and_then must return a Result instance")
            return result
        return cast(Result[U], self)

    def __or__(self, other: Result[U]) -> Result[T_co] | Result[U]:
        """Return this result if it is ``Ok``, otherwise return ``other``."""

        if isinstance(self, Ok):
            return self
        return other

    def __bool__(self) -> bool:
        """Truthiness matches :meth:`is_ok`."""

        return self.is_ok()


@dataclass(frozen=True)
class Ok(Result[T], Generic[T]):
    """Success result."""
    value: T


@dataclass(frozen=True)
class Err(Result[NoReturn]):
    """Error result. ``error`` may be any value, not only an exception."""
    error: Any = None


class Maybe(Generic[T_co]):
    """Optional value that may contain ``Some`` data or ``Nothing``."""

    __slots__ = ()

    def is_some(self) -> bool:
        """Return ``True`` when the value is present."""

        return isinstance(self, Some)

    def is_none(self) -> bool:
        """Return ``True`` when no value is present."""

        return isinstance(self, Nothing)

    def expect(self, message: str) -> T_co:
        if isinstance(self, Some):
            return self.value
        raise RuntimeError(message or "Expected Some value, found Nothing")

    def unwrap(self) -> T_co:
        if isinstance(self, Some):
            return self.value
        raise RuntimeError("Called unwrap on Nothing value")

    def unwrap_or(self, default: U) -> T_co | U:
        if isinstance(self, Some):
            return self.value
        return default

    def map(self, func: Callable[[T_co], U]) -> Maybe[U]:
        if isinstance(self, Some):
            return Some(func(self.value))
        return NOTHING

    def ok_or(self, error: Any) -> Result[T_co]:
        """Convert to ``Result``, using ``error`` when empty."""

        if isinstance(self, Some):
            return Ok(self.value)
        return Err(error)

    def to_optional(self) -> T_co | None:
        if isinstance(self, Some):
            return self.value
        return None

    @classmethod
    def from_optional(cls, value: T_co | None) -> Maybe[T_co]:
        """Create a ``Maybe`` from an optional Python value."""

        if value is None:
            return NOTHING
        return Some(value)

    def __bool__(self) -> bool:
        """Truthiness matches :meth:`is_some`."""

        return self.is_some()


@dataclass(frozen=True)
class Some(Maybe[T], Generic[T]):
    """Presence of a value."""

    value: T


class Nothing(Maybe[NoReturn]):
    """Singleton representing the absence of a value."""

    __slots__ = ()
    _instance: Nothing | None = None

    def __new__(cls) -> Nothing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "Nothing()"


NOTHING: Final[Maybe[NoReturn]] = Nothing()


def branch(value: Result[T] | Maybe[T]) -> tuple[bool, Any]:
    """Split ``value`` for the early-exit operator.

    Returns ``(True, payload)`` when the computation continues with
    ``payload``, or ``(False, failure)`` when it must short-circuit. The
    failure is handed back unchanged (the ``Err`` or ``Nothing`` itself), so
    the caller observes exactly the value that stopped the generator.
    """

    if isinstance(value, Ok):
        return True, value.value
    if isinstance(value, Err):
        return False, value
    if isinstance(value, Some):
        return True, value.value
    if isinstance(value, Nothing):
        return False, value
    raise TypeError(
        f"try_() expects a Result or Maybe value, got {type(value).__name__}"
    )


__all__ = [
    "NOTHING",
    "Err",
    "Maybe",
    "Nothing",
    "Ok",
    "Result",
    "Some",
    "branch",
]
