"""Cooperative cancellation tokens for subprocess execution."""

from __future__ import annotations

from .events import Emitter, Event


class CancellationToken:
    """Read-only view of a cancellation signal.

    Tokens are created by a :class:`CancellationTokenSource`; consumers poll
    :attr:`is_cancellation_requested` or subscribe to
    :attr:`on_cancellation_requested`.
    """

    def __init__(self) -> None:
        """Create a token that has not been cancelled."""
        self._cancelled = False
        self._emitter: Emitter[None] = Emitter()

    @property
    def is_cancellation_requested(self) -> bool:
        """Return whether cancellation has been requested."""
        return self._cancelled

    @property
    def on_cancellation_requested(self) -> Event[None]:
        """Event fired once when cancellation is requested."""
        return self._emitter.event

    @property
    def listener_count(self) -> int:
        """Return the number of callbacks still waiting for cancellation."""
        return self._emitter.listener_count

    def _cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._emitter.fire(None)


class CancellationTokenSource:
    """Owner of a :class:`CancellationToken`."""

    def __init__(self) -> None:
        """Create a source with a fresh token."""
        self.token = CancellationToken()

    def cancel(self) -> None:
        """Request cancellation; repeated calls are ignored."""
        self.token._cancel()  # noqa: SLF001 - the source owns its token

    def dispose(self) -> None:
        """Release the token's listeners without cancelling."""
        self.token._emitter.dispose()  # noqa: SLF001 - the source owns its token


__all__ = ["CancellationToken", "CancellationTokenSource"]
