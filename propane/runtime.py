"""
Runtime support for rewritten generators.

Rewritten functions return one of two adapters around a native generator:

* ``GenIter`` exposes it as a pull iterator.
* ``GenStream`` exposes it as a poll-driven stream (``poll_next``) and, on
  top of that, as an asyncio async iterator.

The remaining public names (``gen_try``, ``async_gen_try``,
``async_gen_yield``, ``async_gen_await``, ``ContextCell``) are what the
rewriter emits calls to; user code does not call them directly.

Both adapters hold the same invariants: once the generator has finished,
raised, or propagated a failure, the adapter reports exhaustion forever and
never resumes the generator again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Generator
from types import TracebackType
from typing import Any, Generic, NoReturn, TypeVar

from propane.poll import ENDED, PENDING, Context, Poll, Pollable, Ready
from propane.result import branch

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Propagated:
    """A failure produced by ``try_``; the adapter reports ``item`` and stops."""

    __slots__ = ("item",)

    def __init__(self, item: Any) -> None:
        self.item = item

    def __repr__(self) -> str:
        return f"Propagated({self.item!r})"


def try_(value: Any) -> NoReturn:
    """Unwrap a ``Result``/``Maybe`` or end the generator with its failure.

    Only meaningful inside a function decorated with ``@generator`` (or one of
    the block entry points), where calls to it are rewritten away.
    """

    raise RuntimeError(
        "try_() can only be used directly inside a @generator function; "
        "nested functions and lambdas are not rewritten"
    )


def _describe(computation: Any) -> str:
    return getattr(computation, "__qualname__", type(computation).__name__)


# ---------------------------------------------------------------------------
# Pull iterator
# ---------------------------------------------------------------------------


class GenIter(Generic[T]):
    """Pull iterator over a generator."""

    __slots__ = ("_computation", "_done", "__weakref__")

    def __init__(self, computation: Generator[Any, None, None]) -> None:
        self._computation = computation
        self._done = False

    @property
    def exhausted(self) -> bool:
        return self._done

    def __iter__(self) -> GenIter[T]:
        return self

    def __next__(self) -> T:
        if self._done:
            raise StopIteration
        try:
            item = next(self._computation)
        except StopIteration:
            self._done = True
            raise StopIteration from None
        except BaseException:
            self._done = True
            raise

        if isinstance(item, Propagated):
            logger.debug("generator propagated failure %r", item.item)
            self.close()
            return item.item
        return item

    def close(self) -> None:
        """Stop the generator now; its ``finally`` blocks run before this returns."""

        self._done = True
        self._computation.close()

    def __enter__(self) -> GenIter[T]:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "exhausted" if self._done else "active"
        return f"GenIter({_describe(self._computation)}, {state})"


# ---------------------------------------------------------------------------
# Poll stream
# ---------------------------------------------------------------------------


class ContextCell:
    """Slot through which a stream hands its current poll context to the body."""

    __slots__ = ("context",)

    def __init__(self) -> None:
        self.context: Context = Context.noop()


def _set_result_unless_done(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.set_result(None)


class GenStream(Generic[T]):
    """Poll stream over a generator speaking the stream protocol.

    The generator must yield only ``Ready(value)``, ``PENDING`` or
    ``Propagated``, and read the poll context from ``cell``; bodies produced
    by the rewriter do exactly that. Any other item is a ``TypeError`` and
    ends the stream. The body must not keep references into its own frame
    that outlive a suspension; rewritten bodies only reach the context through
    ``cell``, which the stream refreshes before every resumption.

    One poll at a time: a re-entrant ``poll_next`` from inside the body fails
    with the generator's own ``ValueError``.
    """

    __slots__ = ("_computation", "_cell", "_done", "__weakref__")

    def __init__(self, computation: Generator[Any, None, None], cell: ContextCell) -> None:
        self._computation = computation
        self._cell = cell
        self._done = False

    @property
    def exhausted(self) -> bool:
        return self._done

    def poll_next(self, cx: Context) -> Poll:
        """``Ready(item)``, ``PENDING`` (``cx`` will be woken) or ``ENDED``."""

        if self._done:
            return ENDED
        self._cell.context = cx
        try:
            item = next(self._computation)
        except StopIteration:
            self._done = True
            return ENDED
        except BaseException:
            self._done = True
            raise

        if isinstance(item, Propagated):
            logger.debug("stream propagated failure %r", item.item)
            self.close()
            return item.item
        if item is PENDING or isinstance(item, Ready):
            return item

        self.close()
        raise TypeError(f"stream body yielded {item!r}, expected Ready or PENDING")

    def __aiter__(self) -> GenStream[T]:
        return self

    async def __anext__(self) -> T:
        loop = asyncio.get_running_loop()
        while True:
            woken: asyncio.Future[None] = loop.create_future()
            cx = Context(lambda woken=woken: loop.call_soon_threadsafe(_set_result_unless_done, woken))
            poll = self.poll_next(cx)
            if poll is ENDED:
                raise StopAsyncIteration
            if isinstance(poll, Ready):
                return poll.value
            await woken

    def close(self) -> None:
        self._done = True
        self._computation.close()

    async def aclose(self) -> None:
        self.close()

    def __enter__(self) -> GenStream[T]:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "ended" if self._done else "active"
        return f"GenStream({_describe(self._computation)}, {state})"


# ---------------------------------------------------------------------------
# Expansion-time rules
# ---------------------------------------------------------------------------


def gen_try(value: Any) -> Generator[Propagated, None, Any]:
    ok, payload = branch(value)
    if ok:
        return payload
    yield Propagated(payload)
    raise RuntimeError("generator resumed after propagating a failure")


def async_gen_try(value: Any) -> Generator[Propagated, None, Any]:
    ok, payload = branch(value)
    if ok:
        return payload
    yield Propagated(Ready(payload))
    raise RuntimeError("stream resumed after propagating a failure")


def async_gen_yield(value: Any) -> Generator[Poll, None, None]:
    yield Ready(value)


class _Awaiting:
    """Polls one external computation on behalf of an ``await``."""

    __slots__ = ("_pollable", "_iterator", "_blocked_on", "_cx")

    def __init__(self, awaitable: Any) -> None:
        self._pollable: Pollable[Any] | None = None
        self._iterator: Any = None
        self._blocked_on: asyncio.Future[Any] | None = None
        self._cx = Context.noop()
        if isinstance(awaitable, Pollable):
            self._pollable = awaitable
            return
        await_method = getattr(type(awaitable), "__await__", None)
        if await_method is None:
            raise TypeError(
                f"object {type(awaitable).__name__} can't be used in 'await' expression"
            )
        self._iterator = await_method(awaitable)

    def poll(self, cx: Context) -> Poll:
        self._cx = cx
        if self._pollable is not None:
            return self._pollable.poll(cx)

        if self._blocked_on is not None:
            if not self._blocked_on.done():
                return PENDING
            self._blocked_on = None

        try:
            yielded = self._iterator.send(None)
        except StopIteration as stop:
            return Ready(stop.value)

        if yielded is None:
            # Bare yield: the awaitable asks to be polled again right away.
            cx.wake()
        elif asyncio.isfuture(yielded):
            yielded._asyncio_future_blocking = False
            yielded.add_done_callback(self._wake_latest)
            self._blocked_on = yielded
        else:
            raise RuntimeError(f"awaitable yielded unsupported object {yielded!r}")
        return PENDING

    def _wake_latest(self, _future: asyncio.Future[Any]) -> None:
        # Whoever polled last is the one waiting.
        self._cx.wake()

    def close(self) -> None:
        close = getattr(self._iterator, "close", None)
        if close is not None:
            close()


def async_gen_await(cell: ContextCell, awaitable: Any) -> Generator[Poll, None, Any]:
    """Wait for ``awaitable``, yielding ``PENDING`` for every poll it is not ready."""

    awaiting = _Awaiting(awaitable)
    try:
        while True:
            poll = awaiting.poll(cell.context)
            if isinstance(poll, Ready):
                return poll.value
            yield PENDING
    finally:
        awaiting.close()


__all__ = [
    "ContextCell",
    "GenIter",
    "GenStream",
    "Propagated",
    "async_gen_await",
    "async_gen_try",
    "async_gen_yield",
    "gen_try",
    "try_",
]
