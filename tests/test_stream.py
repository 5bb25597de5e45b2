"""Asynchronous generators: poll_next and asyncio iteration."""

from __future__ import annotations

import asyncio

import pytest

from propane import (
    ENDED,
    PENDING,
    Context,
    Err,
    GenStream,
    Ok,
    Ready,
    generator,
    try_,
)


class Countdown:
    """Pollable that stays pending for a fixed number of polls."""

    def __init__(self, pending: int, value: object = "done") -> None:
        self.pending = pending
        self.value = value
        self.polls = 0

    def poll(self, cx: Context) -> object:
        self.polls += 1
        if self.pending:
            self.pending -= 1
            cx.wake()
            return PENDING
        return Ready(self.value)


@generator
async def foo(fut) -> int:
    await fut
    yield 0


@generator
async def stream(futures) -> object:
    for future in futures:
        yield await future


@generator
async def checked(values) -> object:
    for value in values:
        yield Ok(try_(value))


@generator
async def ticks():
    yield


def test_pending_until_awaited_future_is_ready() -> None:
    fut = Countdown(3)
    s = foo(fut)
    cx = Context.noop()

    assert isinstance(s, GenStream)
    for _ in range(3):
        assert s.poll_next(cx) is PENDING
    assert s.poll_next(cx) == Ready(0)
    assert s.poll_next(cx) is ENDED
    assert fut.polls == 4


def test_nothing_runs_before_first_poll() -> None:
    fut = Countdown(1)
    foo(fut)
    assert fut.polls == 0


def test_stream_end_is_sticky() -> None:
    s = foo(Countdown(0))
    cx = Context.noop()
    assert s.poll_next(cx) == Ready(0)
    for _ in range(5):
        assert s.poll_next(cx) is ENDED
    assert s.exhausted


def test_every_pending_wait_is_reported() -> None:
    futures = [Countdown(2, "a"), Countdown(0, "b"), Countdown(1, "c")]
    s = stream(futures)
    cx = Context.noop()

    polls = []
    while (poll := s.poll_next(cx)) is not ENDED:
        polls.append(poll)

    assert polls == [PENDING, PENDING, Ready("a"), Ready("b"), PENDING, Ready("c")]


def test_latest_context_is_used_for_wakeups() -> None:
    woken: list[str] = []
    s = foo(Countdown(2))

    assert s.poll_next(Context(lambda: woken.append("first"))) is PENDING
    assert s.poll_next(Context(lambda: woken.append("second"))) is PENDING
    assert woken == ["first", "second"]


def test_bare_yield_produces_ready_none() -> None:
    s = ticks()
    assert s.poll_next(Context.noop()) == Ready(None)
    assert s.poll_next(Context.noop()) is ENDED


def test_propagated_failure_is_tagged_ready() -> None:
    s = checked([Ok(1), Err("nope"), Ok(3)])
    cx = Context.noop()
    assert s.poll_next(cx) == Ready(Ok(1))
    assert s.poll_next(cx) == Ready(Err("nope"))
    assert s.poll_next(cx) is ENDED
    assert s.poll_next(cx) is ENDED


def test_exception_while_polling_ends_stream() -> None:
    class Broken:
        def poll(self, cx: Context) -> object:
            raise ValueError("broken")

    s = foo(Broken())
    with pytest.raises(ValueError, match="broken"):
        s.poll_next(Context.noop())
    assert s.poll_next(Context.noop()) is ENDED


def test_awaiting_non_awaitable_fails() -> None:
    s = foo(42)
    with pytest.raises(TypeError, match="can't be used in 'await' expression"):
        s.poll_next(Context.noop())


def test_closing_mid_wait_releases_the_body() -> None:
    events: list[str] = []

    @generator
    async def guarded(fut):
        try:
            await fut
            yield 1
        finally:
            events.append("released")

    s = guarded(Countdown(5))
    assert s.poll_next(Context.noop()) is PENDING
    s.close()
    assert events == ["released"]
    assert s.poll_next(Context.noop()) is ENDED


@pytest.mark.asyncio
async def test_async_for_over_asyncio_futures() -> None:
    loop = asyncio.get_running_loop()
    futures = [loop.create_future() for _ in range(3)]
    for delay, (index, future) in enumerate(reversed(list(enumerate(futures)))):
        loop.call_later(0.001 * (delay + 1), future.set_result, index)

    results = [item async for item in stream(futures)]
    assert results == [0, 1, 2]


@pytest.mark.asyncio
async def test_awaiting_coroutines() -> None:
    async def double(x: int) -> int:
        await asyncio.sleep(0)
        await asyncio.sleep(0.001)
        return x * 2

    @generator
    async def doubled(values) -> int:
        for value in values:
            yield await double(value)

    assert [item async for item in doubled([1, 2, 3])] == [2, 4, 6]


@pytest.mark.asyncio
async def test_anext_waits_for_pending_pollable() -> None:
    s = foo(Countdown(3))
    assert await s.__anext__() == 0
    with pytest.raises(StopAsyncIteration):
        await s.__anext__()


@pytest.mark.asyncio
async def test_awaited_exception_reaches_consumer() -> None:
    async def fails() -> None:
        await asyncio.sleep(0)
        raise KeyError("missing")

    @generator
    async def failing():
        yield 1
        await fails()
        yield 2

    s = failing()
    assert await s.__anext__() == 1
    with pytest.raises(KeyError):
        await s.__anext__()
    with pytest.raises(StopAsyncIteration):
        await s.__anext__()
