"""Change notifications for documents opened against repository originals.

Editors that show the checked-in version of a file next to the working copy
need to know when that original may have changed. The notifier collects the
roots of repositories that reported changes and, once changes stop arriving
for :data:`CHANGE_DEBOUNCE_SECONDS`, fires :attr:`on_did_change` for every
tracked path under one of those roots.
"""

from __future__ import annotations

import asyncio
import time
import typing as typ
from pathlib import Path

from cvswatch.common.concurrency import Debounced, Throttled
from cvswatch.common.events import Disposable, Emitter, Event, dispose_all
from cvswatch.common.paths import canonical_path, is_descendant

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import os

    from .registry import ModelChangeEvent

CHANGE_DEBOUNCE_SECONDS = 1.1
CACHE_TTL_SECONDS = 3 * 60
CLEANUP_INTERVAL_SECONDS = 5 * 60


class OriginalContentNotifier:
    """Fan repository changes out to tracked original-content paths."""

    def __init__(
        self,
        on_did_change_repository: Event[ModelChangeEvent],
        *,
        delay: float = CHANGE_DEBOUNCE_SECONDS,
        clock: cabc.Callable[[], float] = time.monotonic,
        is_open: cabc.Callable[[Path], bool] | None = None,
        cleanup_interval: float = CLEANUP_INTERVAL_SECONDS,
    ) -> None:
        """Listen to repository changes published by a registry.

        Parameters
        ----------
        on_did_change_repository
            Usually :attr:`Registry.on_did_change_repository`.
        delay
            Quiet period before change events are fanned out.
        clock
            Monotonic time source used to age tracked paths.
        is_open
            Reports whether a tracked path is still open in the host; open
            paths survive :meth:`cleanup` regardless of age.
        cleanup_interval
            Seconds between automatic :meth:`cleanup` runs on the running
            event loop.

        """
        self._clock = clock
        self._is_open = is_open
        self._tracked: dict[Path, float] = {}
        self._changed_roots: set[Path] = set()
        self._on_did_change: Emitter[Path] = Emitter()
        self._fire = Throttled(self._fire_change_events)
        self._eventually_fire = Debounced(
            self._fire, delay, name="original content change fan-out"
        )
        self._disposables: list[Disposable] = [
            on_did_change_repository(self._on_did_change_repository)
        ]
        self._cleanup_interval = cleanup_interval
        self._cleanup_handle: asyncio.TimerHandle | None = None
        self._schedule_cleanup()

    @property
    def on_did_change(self) -> Event[Path]:
        """Event fired with each tracked path whose original may have changed."""
        return self._on_did_change.event

    @property
    def tracked(self) -> tuple[Path, ...]:
        """Return the tracked paths."""
        return tuple(self._tracked)

    def track(self, path: str | os.PathLike[str]) -> Path:
        """Start (or refresh) tracking ``path`` and return its canonical form."""
        canonical = canonical_path(path)
        self._tracked[canonical] = self._clock()
        return canonical

    def cleanup(self) -> None:
        """Drop tracked paths older than the cache TTL that are not open."""
        now = self._clock()
        self._tracked = {
            path: timestamp
            for path, timestamp in self._tracked.items()
            if now - timestamp < CACHE_TTL_SECONDS
            or (self._is_open is not None and self._is_open(path))
        }

    def _schedule_cleanup(self) -> None:
        self._cleanup_handle = asyncio.get_running_loop().call_later(
            self._cleanup_interval, self._run_scheduled_cleanup
        )

    def _run_scheduled_cleanup(self) -> None:
        self.cleanup()
        self._schedule_cleanup()

    def flush(self) -> asyncio.Task[None]:
        """Fan out pending changes now instead of after the quiet period."""
        self._eventually_fire.cancel()
        return self._fire()

    def _on_did_change_repository(self, event: ModelChangeEvent) -> None:
        self._changed_roots.add(event.repository.root)
        self._eventually_fire()

    async def _fire_change_events(self) -> None:
        roots, self._changed_roots = self._changed_roots, set()
        for path in tuple(self._tracked):
            if any(is_descendant(root, path) for root in roots):
                self._on_did_change.fire(path)

    def dispose(self) -> None:
        """Stop listening and cancel pending fan-outs and cleanups."""
        if self._cleanup_handle is not None:
            self._cleanup_handle.cancel()
            self._cleanup_handle = None
        self._eventually_fire.cancel()
        self._disposables = dispose_all(self._disposables)
        self._on_did_change.dispose()


__all__ = [
    "CACHE_TTL_SECONDS",
    "CHANGE_DEBOUNCE_SECONDS",
    "CLEANUP_INTERVAL_SECONDS",
    "OriginalContentNotifier",
]
