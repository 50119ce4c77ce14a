"""Workspace collaborator: folders, filesystem access and change events.

The registry never touches the filesystem directly. It asks a
:class:`Workspace` for the folders to scan, for directory listings and for
the settings that apply to a path, and it listens to the workspace for file
and folder changes. :class:`LocalWorkspace` implements the protocol over the
local filesystem; hosts with their own watcher call
:meth:`LocalWorkspace.notify_change` to feed it.
"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import typing as typ
from pathlib import Path

from cvswatch.common.events import Emitter, Event
from cvswatch.common.paths import canonical_path
from cvswatch.config import FileSettingsProvider
from cvswatch.logging import get_logger, log_debug

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import os

    from cvswatch.config import RepositorySettings, SettingsProvider

logger = get_logger(__name__)


@dc.dataclass(frozen=True, slots=True)
class WorkspaceFoldersChangeEvent:
    """Folders added to and removed from the workspace."""

    added: tuple[Path, ...] = ()
    removed: tuple[Path, ...] = ()


@typ.runtime_checkable
class Workspace(typ.Protocol):
    """Protocol for the host environment the registry runs in."""

    @property
    def folders(self) -> tuple[Path, ...]:
        """Return the workspace folders to scan for repositories."""
        ...

    @property
    def on_did_change(self) -> Event[Path]:
        """Event fired with the path of every changed file."""
        ...

    @property
    def on_did_change_folders(self) -> Event[WorkspaceFoldersChangeEvent]:
        """Event fired when workspace folders are added or removed."""
        ...

    async def list_dir(self, path: Path) -> list[str]:
        """Return the names of the entries directly inside ``path``."""
        ...

    async def read_file(self, path: Path) -> bytes:
        """Return the content of the file at ``path``."""
        ...

    def settings_for(self, path: Path) -> RepositorySettings:
        """Return the repository settings that apply to ``path``."""
        ...


class LocalWorkspace:
    """Workspace backed by the local filesystem."""

    def __init__(
        self,
        folders: cabc.Iterable[str | os.PathLike[str]] = (),
        *,
        settings: SettingsProvider | None = None,
    ) -> None:
        """Create a workspace over ``folders``.

        Parameters
        ----------
        folders
            Initial workspace folders; stored in canonical form.
        settings
            Resolves per-path settings. Defaults to reading
            ``.cvswatch.yaml`` files.

        """
        self._folders: list[Path] = []
        for folder in folders:
            path = canonical_path(folder)
            if path not in self._folders:
                self._folders.append(path)
        self._settings = settings or FileSettingsProvider()
        self._on_did_change: Emitter[Path] = Emitter()
        self._on_did_change_folders: Emitter[WorkspaceFoldersChangeEvent] = Emitter()

    @property
    def folders(self) -> tuple[Path, ...]:
        """Return the workspace folders in insertion order."""
        return tuple(self._folders)

    @property
    def on_did_change(self) -> Event[Path]:
        """Event fired by :meth:`notify_change`."""
        return self._on_did_change.event

    @property
    def on_did_change_folders(self) -> Event[WorkspaceFoldersChangeEvent]:
        """Event fired by :meth:`add_folder` and :meth:`remove_folder`."""
        return self._on_did_change_folders.event

    async def list_dir(self, path: Path) -> list[str]:
        """Return the sorted entry names of ``path``."""
        names = await asyncio.to_thread(
            lambda: [child.name for child in path.iterdir()]
        )
        return sorted(names)

    async def read_file(self, path: Path) -> bytes:
        """Return the raw content of ``path``."""
        return await asyncio.to_thread(path.read_bytes)

    def settings_for(self, path: Path) -> RepositorySettings:
        """Return the settings that apply to ``path``."""
        return self._settings.settings_for(path)

    def notify_change(self, path: str | os.PathLike[str]) -> None:
        """Report that the file at ``path`` changed."""
        self._on_did_change.fire(canonical_path(path))

    def add_folder(self, folder: str | os.PathLike[str]) -> None:
        """Add ``folder`` to the workspace unless it is already present."""
        path = canonical_path(folder)
        if path in self._folders:
            return
        self._folders.append(path)
        log_debug(logger, "Workspace folder added: %s", path)
        self._on_did_change_folders.fire(WorkspaceFoldersChangeEvent(added=(path,)))

    def remove_folder(self, folder: str | os.PathLike[str]) -> None:
        """Remove ``folder`` from the workspace if present."""
        path = canonical_path(folder)
        if path not in self._folders:
            return
        self._folders.remove(path)
        log_debug(logger, "Workspace folder removed: %s", path)
        self._on_did_change_folders.fire(WorkspaceFoldersChangeEvent(removed=(path,)))

    def dispose(self) -> None:
        """Drop every listener."""
        self._on_did_change.dispose()
        self._on_did_change_folders.dispose()


__all__ = ["LocalWorkspace", "Workspace", "WorkspaceFoldersChangeEvent"]
