"""Scheduling combinators for asyncio callables.

Each combinator wraps a callable that returns an awaitable and gives the
wrapper a specific scheduling contract:

``Throttled``
    One in-flight task plus at most one queued follow-up. A call made before
    the in-flight task has started running joins it; a call made while it is
    running joins the single queued follow-up, which starts once the current
    task has finished. Two refreshes therefore never overlap.
``Debounced``
    Every call restarts a timer; the wrapped callable runs once after the
    quiet period. Failures are logged because nobody awaits the result.
``Serialized``
    Calls run one at a time in arrival order.
``Memoized``
    The first call's task is cached and returned to every later caller.

Usage
-----
>>> refresh = Throttled(repository_handle.get_status)
>>> first = refresh()
>>> second = refresh()
>>> first is second
True

"""

from __future__ import annotations

import asyncio
import inspect
import typing as typ

from cvswatch.logging import get_logger, log_exception

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)


class Throttled[**P, T]:
    """Coalesce overlapping calls onto one running and one queued task."""

    def __init__(self, fn: cabc.Callable[P, cabc.Awaitable[T]]) -> None:
        """Wrap ``fn``; arguments of joined calls are discarded."""
        self._fn = fn
        self._current: asyncio.Task[T] | None = None
        self._started = False
        self._next: asyncio.Task[T] | None = None

    @property
    def is_running(self) -> bool:
        """Return whether a task is scheduled or running."""
        return self._current is not None

    def __call__(self, *args: P.args, **kwargs: P.kwargs) -> asyncio.Task[T]:
        """Schedule ``fn`` or join the pending task that will run it."""
        if self._current is None:
            self._current = asyncio.ensure_future(self._invoke(None, args, kwargs))
            return self._current

        if not self._started:
            return self._current

        if self._next is None:
            self._next = asyncio.ensure_future(
                self._invoke(self._current, args, kwargs)
            )
        return self._next

    async def _invoke(
        self,
        previous: asyncio.Task[T] | None,
        args: tuple[typ.Any, ...],
        kwargs: dict[str, typ.Any],
    ) -> T:
        this = asyncio.current_task()
        try:
            if previous is not None:
                await asyncio.wait([previous])
            self._started = True
            return await self._fn(*args, **kwargs)
        finally:
            if self._current is this:
                # Promote the queued task; it has not started yet so new
                # callers may join it.
                self._current, self._next = self._next, None
                self._started = False
            elif self._next is this:
                self._next = None


class Debounced[**P]:
    """Run the wrapped callable once after calls stop for ``delay`` seconds."""

    def __init__(
        self, fn: cabc.Callable[P, object], delay: float, *, name: str = ""
    ) -> None:
        """Wrap ``fn`` with a quiet period of ``delay`` seconds."""
        self._fn = fn
        self._delay = delay
        self._name = name or getattr(fn, "__qualname__", repr(fn))
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        """Return whether a timer is armed or a run is in progress."""
        return self._handle is not None or bool(self._tasks)

    def __call__(self, *args: P.args, **kwargs: P.kwargs) -> None:
        """Restart the quiet-period timer with the latest arguments."""
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self._delay, self._fire, args, kwargs)

    def cancel(self) -> None:
        """Disarm the timer and cancel runs still in progress."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        for task in tuple(self._tasks):
            task.cancel()

    def _fire(self, args: tuple[typ.Any, ...], kwargs: dict[str, typ.Any]) -> None:
        self._handle = None
        task = asyncio.ensure_future(self._invoke(args, kwargs))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _invoke(
        self, args: tuple[typ.Any, ...], kwargs: dict[str, typ.Any]
    ) -> None:
        try:
            result = self._fn(*args, **kwargs)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:  # noqa: BLE001 - nobody awaits debounced runs
            log_exception(logger, f"Debounced call {self._name} failed", exc)


class Serialized[**P, T]:
    """Run calls strictly one after another in arrival order."""

    def __init__(self, fn: cabc.Callable[P, cabc.Awaitable[T]]) -> None:
        """Wrap ``fn`` behind a FIFO lock."""
        self._fn = fn
        self._lock = asyncio.Lock()

    async def __call__(self, *args: P.args, **kwargs: P.kwargs) -> T:
        """Wait for earlier calls to finish, then run ``fn``."""
        async with self._lock:
            return await self._fn(*args, **kwargs)


class Memoized[T]:
    """Cache the task produced by the first call of a zero-argument callable."""

    def __init__(self, fn: cabc.Callable[[], cabc.Awaitable[T]]) -> None:
        """Wrap ``fn``; it runs at most once until :meth:`clear` is called."""
        self._fn = fn
        self._task: asyncio.Future[T] | None = None

    def __call__(self) -> asyncio.Future[T]:
        """Return the cached task, starting it on first use."""
        if self._task is None:
            self._task = asyncio.ensure_future(self._fn())
        return self._task

    def clear(self) -> None:
        """Forget the cached task so the next call runs ``fn`` again."""
        self._task = None


async def sleep_ms(milliseconds: float) -> None:
    """Sleep for ``milliseconds``; used by retry backoff."""
    await asyncio.sleep(milliseconds / 1000)


__all__ = ["Debounced", "Memoized", "Serialized", "Throttled", "sleep_ms"]
