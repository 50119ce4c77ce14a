"""User-facing commands and error presentation.

Commands are declared in the static :data:`COMMANDS` table and dispatched by
:class:`CommandCenter`. A command that requires a repository receives the
one resolved from its first argument, else the only open repository, else
the one the :class:`Presenter` picks. Failures never escape
:meth:`CommandCenter.execute`: they are logged and shown through the
presenter as ``"CVS: <hint>"``.
"""

from __future__ import annotations

import dataclasses as dc
import os
import typing as typ

from cvswatch.logging import get_logger, log_error, log_exception
from cvswatch.process import error_hint
from cvswatch.scm.repository import Repository

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path

    from cvswatch.cvs.client import CvsClient
    from cvswatch.scm.registry import Registry
    from cvswatch.workspace import Workspace

logger = get_logger(__name__)


@dc.dataclass(frozen=True, slots=True)
class CommandSpec:
    """One entry of the command table.

    Attributes
    ----------
    command_id
        Identifier hosts bind to, such as ``cvs.refresh``.
    handler
        Name of the :class:`CommandCenter` coroutine that implements it.
    requires_repository
        Whether the handler receives a resolved repository first.

    """

    command_id: str
    handler: str
    requires_repository: bool = False


COMMANDS: typ.Final[tuple[CommandSpec, ...]] = (
    CommandSpec("cvs.init", "init"),
    CommandSpec("cvs.refresh", "refresh", requires_repository=True),
    CommandSpec("cvs.close", "close", requires_repository=True),
)


class UnknownCommandError(LookupError):
    """Raised when a command id is not in the command table."""

    @classmethod
    def for_id(cls, command_id: str) -> UnknownCommandError:
        """Return the error for ``command_id``."""
        return cls(f"Unknown command: {command_id}")


@typ.runtime_checkable
class Presenter(typ.Protocol):
    """Host UI used by commands to report errors and ask questions."""

    async def show_error(self, message: str) -> None:
        """Display ``message`` as an error."""
        ...

    async def pick_repository(
        self, repositories: cabc.Sequence[Repository]
    ) -> Repository | None:
        """Let the user choose one of ``repositories``."""
        ...

    async def pick_folder(self, folders: cabc.Sequence[Path]) -> Path | None:
        """Let the user choose one of ``folders``."""
        ...


class LoggingPresenter:
    """Presenter for headless hosts: logs errors and never picks."""

    def __init__(self) -> None:
        """Create a presenter with no recorded errors."""
        self.errors: list[str] = []

    async def show_error(self, message: str) -> None:
        """Record ``message`` and log it."""
        self.errors.append(message)
        log_error(logger, "%s", message)

    async def pick_repository(
        self, repositories: cabc.Sequence[Repository]
    ) -> Repository | None:
        """Decline to choose."""
        return None

    async def pick_folder(self, folders: cabc.Sequence[Path]) -> Path | None:
        """Decline to choose."""
        return None


def error_message(error: BaseException) -> str:
    """Return the text shown to the user for ``error``.

    Examples
    --------
    >>> error_message(RuntimeError("cvs status: cannot open status file"))
    'CVS: cannot open status file'
    >>> error_message(RuntimeError(""))
    'CVS error'

    """
    hint = error_hint(error)
    return f"CVS: {hint}" if hint else "CVS error"


class CommandCenter:
    """Dispatch command ids to handlers."""

    def __init__(
        self,
        client: CvsClient,
        registry: Registry,
        workspace: Workspace,
        presenter: Presenter,
    ) -> None:
        """Bind the handlers to the engine's collaborators."""
        self._client = client
        self._registry = registry
        self._workspace = workspace
        self._presenter = presenter
        self._specs = {spec.command_id: spec for spec in COMMANDS}

    @property
    def command_ids(self) -> tuple[str, ...]:
        """Return the ids of every available command."""
        return tuple(self._specs)

    async def execute(self, command_id: str, *args: object) -> object:
        """Run ``command_id`` with ``args``.

        Returns the handler's result, or ``None`` when no repository could be
        resolved or the handler failed.

        Raises
        ------
        UnknownCommandError
            If ``command_id`` is not in :data:`COMMANDS`.

        """
        spec = self._specs.get(command_id)
        if spec is None:
            raise UnknownCommandError.for_id(command_id)

        handler = getattr(self, spec.handler)
        try:
            if not spec.requires_repository:
                return await handler(*args)

            repository = await self._resolve_repository(args[0] if args else None)
            if repository is None:
                return None
            return await handler(repository, *args[1:])
        except Exception as exc:  # noqa: BLE001 - commands report, never raise
            log_exception(logger, f"Command {command_id} failed", exc)
            await self._presenter.show_error(error_message(exc))
            return None

    async def _resolve_repository(self, hint: object) -> Repository | None:
        if isinstance(hint, (str, os.PathLike, Repository)):
            repository = self._registry.get_repository(hint)
            if repository is not None:
                return repository

        repositories = self._registry.repositories
        if len(repositories) == 1:
            return repositories[0]
        if not repositories:
            return None
        return await self._presenter.pick_repository(repositories)

    async def init(self, path: str | Path | None = None) -> Repository | None:
        """Run ``cvs init`` in ``path`` (or a picked folder) and open it."""
        target = path
        if target is None:
            folders = self._workspace.folders
            target = (
                folders[0]
                if len(folders) == 1
                else await self._presenter.pick_folder(folders)
            )
        if target is None:
            return None

        await self._client.init(target)
        await self._registry.try_open_repository(target)
        return self._registry.get_repository(target)

    async def refresh(self, repository: Repository) -> None:
        """Refresh the working-tree status of ``repository``."""
        await repository.status()

    async def close(self, repository: Repository) -> None:
        """Close ``repository`` and drop it from the registry."""
        self._registry.close_repository(repository)


__all__ = [
    "COMMANDS",
    "CommandCenter",
    "CommandSpec",
    "LoggingPresenter",
    "Presenter",
    "UnknownCommandError",
    "error_message",
]
