"""Per-repository operation state machine.

A :class:`Repository` wraps a :class:`~cvswatch.cvs.RepositoryHandle` and
runs every command through :meth:`Repository.run`, which:

1. refuses to start unless the repository is ``IDLE``;
2. records the operation in the :class:`OperationTracker` and announces it;
3. runs the operation body under the repository's retry policy;
4. refreshes the working-tree resources unless the operation is read-only;
5. balances the tracker and announces the outcome, even on failure.

Status refreshes are throttled so at most one ``cvs status`` runs per
repository, with at most one more queued behind it. File changes reported
through :meth:`Repository.notify_file_change` schedule a debounced refresh
when autorefresh is enabled.
"""

from __future__ import annotations

import dataclasses as dc
import enum
import typing as typ
from pathlib import Path

from cvswatch.common.concurrency import Debounced, Throttled
from cvswatch.common.events import Emitter, Event
from cvswatch.config import DEFAULT_DEBOUNCE_SECONDS, RepositorySettings
from cvswatch.cvs.client import METADATA_DIR
from cvswatch.logging import get_logger, log_debug, log_warning

from .errors import RepositoryStateError
from .operations import Operation, Operations, OperationTracker, is_read_only
from .resource import Resource, ResourceGroup, ResourceGroupType
from .retry import NO_RETRY, RetryPolicy, lock_contention_policy

if typ.TYPE_CHECKING:
    import asyncio
    import collections.abc as cabc
    import os

    from cvswatch.cvs.client import RepositoryHandle

logger = get_logger(__name__)


class RepositoryState(enum.StrEnum):
    """Lifecycle of a repository; ``DISPOSED`` is terminal."""

    IDLE = "Idle"
    DISPOSED = "Disposed"


@dc.dataclass(frozen=True, slots=True)
class OperationResult:
    """Outcome announced after every :meth:`Repository.run`."""

    operation: Operation
    error: BaseException | None = None


class Repository:
    """State machine around one working copy."""

    def __init__(
        self,
        handle: RepositoryHandle,
        settings: RepositorySettings | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
        refresh_delay: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        """Wrap ``handle``.

        Parameters
        ----------
        handle
            Client façade bound to the repository root.
        settings
            Per-path settings; defaults apply when omitted.
        retry_policy
            Overrides the policy derived from ``settings.retry_on_lock``.
        refresh_delay
            Quiet period in seconds before file changes trigger a refresh.

        """
        self._handle = handle
        self.settings = settings or RepositorySettings()
        if retry_policy is None:
            retry_policy = (
                lock_contention_policy() if self.settings.retry_on_lock else NO_RETRY
            )
        self.retry_policy = retry_policy

        self._state = RepositoryState.IDLE
        self._operations = OperationTracker()
        self.did_hit_limit = False
        self.working_tree = ResourceGroup(ResourceGroupType.WORKING_TREE, "Changes")

        self._on_did_change_state: Emitter[RepositoryState] = Emitter()
        self._on_did_change_repository: Emitter[Path] = Emitter()
        self._on_did_change_original_resource: Emitter[Path] = Emitter()
        self._on_run_operation: Emitter[Operation] = Emitter()
        self._on_did_run_operation: Emitter[OperationResult] = Emitter()

        self._status = Throttled(self._run_status)
        self._model_refresh = Throttled(self._refresh_model)
        self._autorefresh = Debounced(
            self.status, refresh_delay, name=f"autorefresh {handle.root}"
        )

    def __repr__(self) -> str:
        """Return a debugging representation naming the root and state."""
        return f"Repository(root={str(self.root)!r}, state={self._state})"

    @property
    def root(self) -> Path:
        """Return the repository root directory."""
        return self._handle.root

    @property
    def handle(self) -> RepositoryHandle:
        """Return the client façade bound to this repository."""
        return self._handle

    @property
    def state(self) -> RepositoryState:
        """Return the current lifecycle state."""
        return self._state

    @property
    def operations(self) -> Operations:
        """Return a read-only view of the running operations."""
        return self._operations

    @property
    def on_did_change_state(self) -> Event[RepositoryState]:
        """Event fired when the lifecycle state changes."""
        return self._on_did_change_state.event

    @property
    def on_did_change_repository(self) -> Event[Path]:
        """Event fired with each changed path inside the repository."""
        return self._on_did_change_repository.event

    @property
    def on_did_change_original_resource(self) -> Event[Path]:
        """Event fired when repository metadata for a directory changes."""
        return self._on_did_change_original_resource.event

    @property
    def on_run_operation(self) -> Event[Operation]:
        """Event fired when an operation starts."""
        return self._on_run_operation.event

    @property
    def on_did_run_operation(self) -> Event[OperationResult]:
        """Event fired when an operation finishes, successfully or not."""
        return self._on_did_run_operation.event

    def status(self) -> asyncio.Task[None]:
        """Refresh the working-tree resources.

        Calls made while a refresh is queued but not yet running share it;
        calls made while one runs share a single follow-up refresh.
        """
        return self._status()

    async def _run_status(self) -> None:
        await self.run(Operation.STATUS)

    async def run[T](
        self,
        operation: Operation,
        body: cabc.Callable[[], cabc.Awaitable[T]] | None = None,
    ) -> T | None:
        """Run ``body`` as ``operation`` with tracking and model refresh.

        Raises
        ------
        RepositoryStateError
            If the repository is not ``IDLE``. Nothing is spawned.

        """
        if self._state is not RepositoryState.IDLE:
            raise RepositoryStateError.disposed(self.root)

        self._operations.start(operation)
        self._on_run_operation.fire(operation)
        error: BaseException | None = None
        try:
            result = await self.retry_run(body) if body is not None else None
            if not is_read_only(operation):
                await self.retry_run(self.update_model_state)
        except BaseException as exc:
            error = exc
            raise
        else:
            return result
        finally:
            self._operations.end(operation)
            self._on_did_run_operation.fire(OperationResult(operation, error))

    async def retry_run[T](self, body: cabc.Callable[[], cabc.Awaitable[T]]) -> T:
        """Await ``body`` under the repository's retry policy."""
        return await self.retry_policy.run(body)

    def update_model_state(self) -> asyncio.Task[None]:
        """Fetch status and republish the working-tree group (throttled)."""
        return self._model_refresh()

    async def _refresh_model(self) -> None:
        result = await self._handle.get_status(
            limit=self.settings.status_limit, encoding=self.settings.encoding
        )
        if self._state is RepositoryState.DISPOSED:
            return

        if result.did_hit_limit:
            log_warning(
                logger,
                "Too many changes in %s; showing the first %d",
                self.root,
                self.settings.status_limit,
            )
        self.did_hit_limit = result.did_hit_limit
        self.working_tree.resource_states = [
            Resource.from_entry(self.root, entry) for entry in result.status
        ]

    def notify_file_change(self, path: str | os.PathLike[str]) -> None:
        """Handle a change to ``path`` inside the repository.

        Changes inside a ``CVS`` metadata folder also signal that the
        original content of the owning directory changed.
        """
        if self._state is RepositoryState.DISPOSED:
            return

        changed = Path(path)
        self._on_did_change_repository.fire(changed)

        owner = _metadata_owner(changed)
        if owner is not None:
            log_debug(logger, "Repository metadata changed under %s", owner)
            self._on_did_change_original_resource.fire(owner)

        if self.settings.autorefresh:
            self._autorefresh()

    def dispose(self) -> None:
        """Move to ``DISPOSED`` and release every listener; idempotent."""
        if self._state is RepositoryState.DISPOSED:
            return

        self._autorefresh.cancel()
        self._state = RepositoryState.DISPOSED
        self._on_did_change_state.fire(self._state)

        for emitter in (
            self._on_did_change_state,
            self._on_did_change_repository,
            self._on_did_change_original_resource,
            self._on_run_operation,
            self._on_did_run_operation,
        ):
            emitter.dispose()
        self.working_tree.dispose()


def _metadata_owner(path: Path) -> Path | None:
    """Return the directory whose ``CVS`` metadata ``path`` belongs to."""
    if path.name == METADATA_DIR:
        return path.parent
    if path.parent.name == METADATA_DIR:
        return path.parent.parent
    return None


__all__ = ["OperationResult", "Repository", "RepositoryState"]
