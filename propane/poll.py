"""
Poll protocol shared by asynchronous generators and the computations they wait on.

A poll answers one question: is the next value ready? ``PENDING`` means not
yet (the poller arranged for ``Context.wake`` to be called when it is worth
asking again), ``Ready(value)`` carries the value and ``ENDED`` says a stream
has nothing more to produce.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Final, Generic, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)


class Poll:
    """Outcome of a single poll."""

    __slots__ = ()

    def is_ready(self) -> bool:
        return isinstance(self, Ready)

    def is_pending(self) -> bool:
        return self is PENDING


@dataclass(frozen=True)
class Ready(Poll, Generic[T]):
    """The polled computation produced ``value``."""

    value: T = None  # type: ignore[assignment]


class _Pending(Poll):
    __slots__ = ()
    _instance: _Pending | None = None

    def __new__(cls) -> _Pending:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "PENDING"


class _Ended(Poll):
    __slots__ = ()
    _instance: _Ended | None = None

    def __new__(cls) -> _Ended:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ENDED"


PENDING: Final[Poll] = _Pending()
ENDED: Final[Poll] = _Ended()


class Context:
    """Capability handed down by whoever drives a poll.

    The only thing a poller may do with it is remember :meth:`wake` and call
    it once progress is possible. Each poll may carry a different context;
    the most recent one wins.
    """

    __slots__ = ("_waker",)

    def __init__(self, waker: Callable[[], None] | None = None) -> None:
        self._waker = waker

    def wake(self) -> None:
        if self._waker is not None:
            self._waker()

    @classmethod
    def noop(cls) -> Context:
        """A context whose wake-ups go nowhere, for manual polling loops."""

        return cls(None)

    def __repr__(self) -> str:
        return f"Context(waker={self._waker!r})"


@runtime_checkable
class Pollable(Protocol[T_co]):
    """An external computation that can be polled directly."""

    def poll(self, cx: Context) -> Poll: ...


@runtime_checkable
class Stream(Protocol[T_co]):
    """A poll-driven asynchronous sequence, also usable with ``async for``."""

    def poll_next(self, cx: Context) -> Poll: ...

    def __aiter__(self) -> Stream[T_co]: ...

    def __anext__(self) -> Awaitable[T_co]: ...


__all__ = [
    "ENDED",
    "PENDING",
    "Context",
    "Poll",
    "Pollable",
    "Ready",
    "Stream",
]
