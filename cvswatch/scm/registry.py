"""Registry of open repositories.

The registry discovers working copies in the workspace, opens at most one
:class:`~cvswatch.scm.repository.Repository` per canonical root and
republishes repository events with the repository attached. Opening is
serialized: concurrent :meth:`Registry.try_open_repository` calls run one at
a time, so two requests for the same path yield one repository.

Usage
-----
::

    registry = Registry(client, LocalWorkspace(["/ws"]))
    await registry.initial_scan
    for repository in registry.repositories:
        await repository.status()

"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import os
import typing as typ
from pathlib import Path

from cvswatch.common.concurrency import Serialized
from cvswatch.common.events import (
    Disposable,
    Emitter,
    Event,
    dispose_all,
    filter_event,
    to_disposable,
)
from cvswatch.common.paths import canonical_path, is_descendant
from cvswatch.config import DEFAULT_DEBOUNCE_SECONDS
from cvswatch.cvs.client import METADATA_DIR
from cvswatch.logging import get_logger, log_debug, log_exception, log_info

from .repository import Repository, RepositoryState

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from cvswatch.cvs.client import CvsClient
    from cvswatch.workspace import Workspace, WorkspaceFoldersChangeEvent

    from .retry import RetryPolicy

logger = get_logger(__name__)

type RepositoryHint = str | os.PathLike[str] | Repository


@dc.dataclass(frozen=True, slots=True)
class ModelChangeEvent:
    """A path changed inside an open repository."""

    repository: Repository
    uri: Path


@dc.dataclass(frozen=True, slots=True)
class OriginalResourceChangeEvent:
    """Repository metadata changed for a directory of an open repository."""

    repository: Repository
    uri: Path


class OpenRepository:
    """Registry entry pairing a repository with its teardown."""

    def __init__(
        self, repository: Repository, teardown: cabc.Callable[[], None]
    ) -> None:
        """Bind ``repository`` to the callback that unregisters it."""
        self.repository = repository
        self._teardown = to_disposable(teardown)

    def dispose(self) -> None:
        """Unregister and dispose the repository; runs at most once."""
        self._teardown.dispose()


class Registry:
    """Discover, open and track repositories in a workspace."""

    def __init__(
        self,
        client: CvsClient,
        workspace: Workspace,
        *,
        retry_policy: RetryPolicy | None = None,
        refresh_delay: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        """Create the registry and start scanning the workspace folders.

        Must be called with a running event loop; the scan task is exposed
        as :attr:`initial_scan`.
        """
        self._client = client
        self._workspace = workspace
        self._retry_policy = retry_policy
        self._refresh_delay = refresh_delay
        self._open_repositories: list[OpenRepository] = []
        self._scans: set[asyncio.Task[None]] = set()
        self._disposed = False

        self._on_did_open_repository: Emitter[Repository] = Emitter()
        self._on_did_close_repository: Emitter[Repository] = Emitter()
        self._on_did_change_repository: Emitter[ModelChangeEvent] = Emitter()
        self._on_did_change_original_resource: Emitter[
            OriginalResourceChangeEvent
        ] = Emitter()

        self.try_open_repository = Serialized(self._try_open_repository)

        self._disposables: list[Disposable] = [
            workspace.on_did_change(self._on_workspace_change),
            workspace.on_did_change_folders(self._on_workspace_folders_change),
        ]
        self.initial_scan = self._schedule_scan(workspace.folders)

    @property
    def repositories(self) -> tuple[Repository, ...]:
        """Return the open repositories in opening order."""
        return tuple(entry.repository for entry in self._open_repositories)

    @property
    def on_did_open_repository(self) -> Event[Repository]:
        """Event fired once for each repository the registry opens."""
        return self._on_did_open_repository.event

    @property
    def on_did_close_repository(self) -> Event[Repository]:
        """Event fired when a repository leaves the registry."""
        return self._on_did_close_repository.event

    @property
    def on_did_change_repository(self) -> Event[ModelChangeEvent]:
        """Event republishing path changes of every open repository."""
        return self._on_did_change_repository.event

    @property
    def on_did_change_original_resource(self) -> Event[OriginalResourceChangeEvent]:
        """Event republishing metadata changes of every open repository."""
        return self._on_did_change_original_resource.event

    async def scan_folders(self, folders: cabc.Iterable[Path]) -> None:
        """Open every folder whose immediate children include ``CVS``."""
        for folder in folders:
            try:
                children = await self._workspace.list_dir(folder)
            except OSError as exc:
                log_debug(logger, "Skipping unreadable folder %s: %s", folder, exc)
                continue
            if METADATA_DIR in children:
                await self.try_open_repository(folder)

    def _schedule_scan(self, folders: cabc.Iterable[Path]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(self.scan_folders(tuple(folders)))
        self._scans.add(task)
        task.add_done_callback(self._scans.discard)
        return task

    async def _try_open_repository(self, path: str | os.PathLike[str]) -> None:
        if self._disposed or self.get_repository(path) is not None:
            return

        root = canonical_path(path)
        try:
            settings = await asyncio.to_thread(self._workspace.settings_for, root)
            if not settings.enabled:
                log_debug(logger, "Repository disabled by settings: %s", root)
                return

            if self._disposed or self.get_repository(root) is not None:
                return

            repository = Repository(
                self._client.open(root),
                settings,
                retry_policy=self._retry_policy,
                refresh_delay=self._refresh_delay,
            )
        except Exception as exc:  # noqa: BLE001 - discovery must not abort scans
            log_exception(logger, f"Failed to open repository at {root}", exc)
            return

        self.open(repository)

    def open(self, repository: Repository) -> None:
        """Track ``repository`` and republish its events."""
        log_info(logger, "Open repository: %s", repository.root)

        on_disposed = filter_event(
            repository.on_did_change_state,
            lambda state: state is RepositoryState.DISPOSED,
        )
        listeners = [
            on_disposed(lambda _: entry.dispose()),
            repository.on_did_change_repository(
                lambda uri: self._on_did_change_repository.fire(
                    ModelChangeEvent(repository, uri)
                )
            ),
            repository.on_did_change_original_resource(
                lambda uri: self._on_did_change_original_resource.fire(
                    OriginalResourceChangeEvent(repository, uri)
                )
            ),
        ]

        def teardown() -> None:
            dispose_all(listeners)
            repository.dispose()
            self._open_repositories.remove(entry)
            log_info(logger, "Close repository: %s", repository.root)
            self._on_did_close_repository.fire(repository)

        entry = OpenRepository(repository, teardown)
        self._open_repositories.append(entry)
        self._on_did_open_repository.fire(repository)

    def close_repository(self, repository: Repository) -> None:
        """Dispose ``repository`` and remove it from the registry."""
        entry = self._get_open_repository(repository)
        if entry is not None:
            entry.dispose()

    def get_repository(self, hint: RepositoryHint) -> Repository | None:
        """Return the open repository matching ``hint``.

        A path resolves to the repository with the longest root that contains
        it; a :class:`Repository` resolves to itself while it is open.
        """
        entry = self._get_open_repository(hint)
        return entry.repository if entry is not None else None

    def _get_open_repository(self, hint: RepositoryHint) -> OpenRepository | None:
        if isinstance(hint, Repository):
            return next(
                (e for e in self._open_repositories if e.repository is hint), None
            )

        if not os.fspath(hint):
            return None
        resource_path = canonical_path(hint)
        candidates = sorted(
            self._open_repositories,
            key=lambda e: len(str(e.repository.root)),
            reverse=True,
        )
        for entry in candidates:
            if is_descendant(entry.repository.root, resource_path):
                return entry
        return None

    def _on_workspace_change(self, path: Path) -> None:
        repository = self.get_repository(path)
        if repository is not None:
            repository.notify_file_change(path)

    def _on_workspace_folders_change(self, event: WorkspaceFoldersChangeEvent) -> None:
        for removed in event.removed:
            for repository in self.repositories:
                if is_descendant(removed, repository.root):
                    self.close_repository(repository)
        if event.added and not self._disposed:
            self._schedule_scan(event.added)

    def dispose(self) -> None:
        """Close every repository and stop listening to the workspace."""
        if self._disposed:
            return
        self._disposed = True
        for task in tuple(self._scans):
            task.cancel()
        self._disposables = dispose_all(self._disposables)
        for entry in tuple(self._open_repositories):
            entry.dispose()
        for emitter in (
            self._on_did_open_repository,
            self._on_did_close_repository,
            self._on_did_change_repository,
            self._on_did_change_original_resource,
        ):
            emitter.dispose()


__all__ = [
    "ModelChangeEvent",
    "OpenRepository",
    "OriginalResourceChangeEvent",
    "Registry",
    "RepositoryHint",
]
