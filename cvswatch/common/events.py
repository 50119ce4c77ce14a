"""Publish/subscribe primitives shared by every cvswatch component.

An :class:`Emitter` owns a list of listeners and exposes a subscription
function (its :attr:`Emitter.event`). Subscribing returns a
:class:`Disposable` that removes the listener again.

Firing order is registration order. Listeners are snapshotted when
:meth:`Emitter.fire` starts, so a listener added while an event is being
dispatched does not receive that event. A listener that raises is logged and
does not prevent later listeners from running.
"""

from __future__ import annotations

import asyncio
import typing as typ

from cvswatch.logging import get_logger, log_exception

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)


class Disposable(typ.Protocol):
    """Anything that can release the resources it holds."""

    def dispose(self) -> None: ...


class _CallbackDisposable:
    """Disposable that runs a callback at most once."""

    __slots__ = ("_callback",)

    def __init__(self, callback: cabc.Callable[[], None]) -> None:
        self._callback: cabc.Callable[[], None] | None = callback

    def dispose(self) -> None:
        callback, self._callback = self._callback, None
        if callback is not None:
            callback()


def to_disposable(callback: cabc.Callable[[], None]) -> Disposable:
    """Wrap a teardown callback so it runs at most once."""
    return _CallbackDisposable(callback)


def dispose_all(disposables: cabc.Iterable[Disposable]) -> list[Disposable]:
    """Dispose every item and return an empty list for reassignment."""
    for disposable in list(disposables):
        disposable.dispose()
    return []


type Listener[T] = cabc.Callable[[T], object]
type Event[T] = cabc.Callable[[Listener[T]], Disposable]


class Emitter[T]:
    """Typed event source with explicit subscription handles."""

    def __init__(self) -> None:
        """Create an emitter without listeners."""
        self._listeners: list[Listener[T]] = []
        self._disposed = False

    @property
    def listener_count(self) -> int:
        """Return the number of currently registered listeners."""
        return len(self._listeners)

    def event(self, listener: Listener[T]) -> Disposable:
        """Register ``listener`` and return a handle that unregisters it."""
        if self._disposed:
            return to_disposable(lambda: None)
        self._listeners.append(listener)

        def remove() -> None:
            # The same callable may be subscribed twice; remove one entry.
            if listener in self._listeners:
                self._listeners.remove(listener)

        return to_disposable(remove)

    def fire(self, value: T) -> None:
        """Deliver ``value`` to every listener registered before the call."""
        for listener in tuple(self._listeners):
            try:
                listener(value)
            except Exception as exc:  # noqa: BLE001 - listener faults stay local
                log_exception(logger, "Event listener raised", exc)

    def dispose(self) -> None:
        """Drop every listener; later subscriptions are ignored."""
        self._listeners.clear()
        self._disposed = True


def filter_event[T](event: Event[T], predicate: cabc.Callable[[T], bool]) -> Event[T]:
    """Return an event that only forwards values matching ``predicate``."""

    def subscribe(listener: Listener[T]) -> Disposable:
        return event(lambda value: predicate(value) and listener(value))

    return subscribe


def once_event[T](event: Event[T]) -> Event[T]:
    """Return an event whose listeners unsubscribe after the first delivery."""

    def subscribe(listener: Listener[T]) -> Disposable:
        handle: Disposable | None = None
        fired = False

        def forward(value: T) -> None:
            nonlocal fired
            if fired:
                return
            fired = True
            if handle is not None:
                handle.dispose()
            listener(value)

        handle = event(forward)
        if fired:
            handle.dispose()
        return handle

    return subscribe


async def event_to_future[T](event: Event[T]) -> T:
    """Wait for the next value delivered by ``event``."""
    future: asyncio.Future[T] = asyncio.get_running_loop().create_future()

    def resolve(value: T) -> None:
        if not future.done():
            future.set_result(value)

    handle = once_event(event)(resolve)
    try:
        return await future
    finally:
        handle.dispose()


__all__ = [
    "Disposable",
    "Emitter",
    "Event",
    "Listener",
    "dispose_all",
    "event_to_future",
    "filter_event",
    "once_event",
    "to_disposable",
]
