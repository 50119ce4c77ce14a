"""Engine activation and the ``cvswatch`` command-line entry point.

:func:`activate` wires the engine together in dependency order:

1. read :class:`~cvswatch.config.EngineConfig` (unless one is passed in);
2. discover the ``cvs`` client, failing with
   :class:`~cvswatch.process.ClientNotFoundError` when none is usable;
3. build the client, the workspace, the registry, the original-content
   notifier and the command center;
4. wait for the registry's initial scan.

The CLI is built with cyclopts:

- ``cvswatch status [FOLDERS...] [--limit N] [--log-level L]`` refreshes
  every repository found in the folders and prints one line per resource;
- ``cvswatch init PATH`` runs ``cvs init`` in ``PATH``.

Exit codes: ``0`` on success, ``1`` when a command or refresh failed and
``2`` when no ``cvs`` client could be found.
"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import sys
import typing as typ
from pathlib import Path

from cyclopts import App, Parameter

from cvswatch.commands import CommandCenter, LoggingPresenter, error_message
from cvswatch.config import ConfigError, EngineConfig, FileSettingsProvider
from cvswatch.cvs import CvsClient, CvsFinder
from cvswatch.logging import (
    configure_logging,
    get_logger,
    log_debug,
    log_error,
    log_info,
    log_warning,
)
from cvswatch.process import ClientNotFoundError
from cvswatch.scm import OriginalContentNotifier, Registry
from cvswatch.workspace import LocalWorkspace

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import os

    from cvswatch.commands import Presenter
    from cvswatch.scm import Repository
    from cvswatch.workspace import Workspace

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CLIENT_NOT_FOUND = 2

app = App(
    name="cvswatch",
    help="Track the state of CVS working copies",
    version="0.1.0",
)


@dc.dataclass(slots=True)
class Engine:
    """Collaborators of an activated engine."""

    config: EngineConfig
    client: CvsClient
    workspace: Workspace
    registry: Registry
    notifier: OriginalContentNotifier
    commands: CommandCenter

    async def refresh_all(self) -> dict[Repository, BaseException | None]:
        """Refresh every open repository concurrently.

        Returns the failure for each repository, ``None`` when it refreshed.
        """
        repositories = self.registry.repositories
        outcomes = await asyncio.gather(
            *(repository.status() for repository in repositories),
            return_exceptions=True,
        )
        return {
            repository: outcome if isinstance(outcome, BaseException) else None
            for repository, outcome in zip(repositories, outcomes, strict=True)
        }

    def dispose(self) -> None:
        """Close every repository and release listeners."""
        self.notifier.dispose()
        self.registry.dispose()


async def activate(
    config: EngineConfig | None = None,
    *,
    folders: cabc.Iterable[str | os.PathLike[str]] = (),
    workspace: Workspace | None = None,
    presenter: Presenter | None = None,
) -> Engine | None:
    """Discover the client and start the engine.

    Returns ``None`` when the engine is disabled by configuration.

    Raises
    ------
    ClientNotFoundError
        If no usable ``cvs`` client is found.
    ConfigError
        If ``config`` is omitted and the environment holds invalid values.

    """
    config = config or EngineConfig.from_env()
    if not config.enabled:
        log_info(logger, "cvswatch is disabled by configuration")
        return None

    info = await CvsFinder(config.cvs_path).find_cvs()
    client = CvsClient(info.path, version=info.version)

    if workspace is None:
        workspace = LocalWorkspace(
            folders,
            settings=FileSettingsProvider(config.repository_defaults()),
        )
    registry = Registry(client, workspace, refresh_delay=config.debounce_seconds)
    notifier = OriginalContentNotifier(registry.on_did_change_repository)
    commands = CommandCenter(
        client, registry, workspace, presenter or LoggingPresenter()
    )

    await registry.initial_scan
    log_debug(logger, "Activated with %d repositories", len(registry.repositories))
    return Engine(
        config=config,
        client=client,
        workspace=workspace,
        registry=registry,
        notifier=notifier,
        commands=commands,
    )


class ConsolePresenter(LoggingPresenter):
    """Presenter that also writes errors to standard error."""

    async def show_error(self, message: str) -> None:
        """Record ``message`` and print it."""
        await super().show_error(message)
        print(message, file=sys.stderr)


def _load_config(log_level: str | None, limit: int | None) -> EngineConfig:
    config = EngineConfig.from_env()
    level = log_level or config.log_level
    _, invalid = configure_logging(level, force=True)
    if invalid:
        log_warning(logger, "Unknown log level %r; using INFO", level)
    if limit is not None:
        config = dc.replace(config, status_limit=limit)
    return config


def _report_missing_client(exc: ClientNotFoundError) -> int:
    log_error(logger, "%s", exc.message)
    detail = f" ({exc.stderr})" if exc.stderr else ""
    print(
        f"cvswatch: {exc.message}{detail} Install cvs or set CVSWATCH_CVS_PATH.",
        file=sys.stderr,
    )
    return EXIT_CLIENT_NOT_FOUND


async def _status(config: EngineConfig, folders: tuple[Path, ...]) -> int:
    engine = await activate(config, folders=folders, presenter=ConsolePresenter())
    if engine is None:
        return EXIT_OK

    try:
        exit_code = EXIT_OK
        for repository, error in (await engine.refresh_all()).items():
            if error is not None:
                print(f"{repository.root}: {error_message(error)}", file=sys.stderr)
                exit_code = EXIT_FAILURE
                continue
            for resource in repository.working_tree.resource_states:
                print(f"{resource.status}\t{resource.uri}")
            if repository.did_hit_limit:
                print(f"{repository.root}: status truncated", file=sys.stderr)
        return exit_code
    finally:
        engine.dispose()


async def _init(config: EngineConfig, path: Path) -> int:
    presenter = ConsolePresenter()
    engine = await activate(config, folders=(path,), presenter=presenter)
    if engine is None:
        return EXIT_OK

    try:
        await engine.commands.execute("cvs.init", path)
        return EXIT_FAILURE if presenter.errors else EXIT_OK
    finally:
        engine.dispose()


@app.command
def status(
    *folders: Path,
    limit: typ.Annotated[
        int | None, Parameter(env_var="CVSWATCH_STATUS_LIMIT")
    ] = None,
    log_level: typ.Annotated[
        str | None, Parameter(env_var="CVSWATCH_LOG_LEVEL")
    ] = None,
) -> int:
    """Print the status of every CVS working copy in FOLDERS.

    Args:
        folders: Workspace folders to scan (defaults to the current directory).
        limit: Maximum number of entries reported per repository.
        log_level: Log level for diagnostic output (default INFO).

    Returns:
        Exit code (0 for success, non-zero for failure).

    """
    try:
        config = _load_config(log_level, limit)
    except ConfigError as exc:
        log_error(logger, "%s", exc)
        return EXIT_FAILURE

    try:
        return asyncio.run(_status(config, folders or (Path.cwd(),)))
    except ClientNotFoundError as exc:
        return _report_missing_client(exc)


@app.command
def init(
    path: Path,
    *,
    log_level: typ.Annotated[
        str | None, Parameter(env_var="CVSWATCH_LOG_LEVEL")
    ] = None,
) -> int:
    """Create a CVS repository in PATH.

    Args:
        path: Directory to initialise.
        log_level: Log level for diagnostic output (default INFO).

    Returns:
        Exit code (0 for success, non-zero for failure).

    """
    try:
        config = _load_config(log_level, None)
    except ConfigError as exc:
        log_error(logger, "%s", exc)
        return EXIT_FAILURE

    try:
        return asyncio.run(_init(config, path))
    except ClientNotFoundError as exc:
        return _report_missing_client(exc)


def main() -> int:
    """Entry point for the CLI."""
    return app()


if __name__ == "__main__":
    sys.exit(main())
