"""Façades over :class:`~cvswatch.process.ProcessRunner` for the ``cvs`` client.

:class:`CvsClient` binds the discovered binary to working directories and
hands out one :class:`RepositoryHandle` per repository root. The handle runs
``cvs status`` in streaming mode, feeding output to the status parser as it
arrives, so large working copies produce results without waiting for the
process to finish.
"""

from __future__ import annotations

import asyncio
import contextlib
import typing as typ
from pathlib import Path

from cvswatch.common.concurrency import Memoized
from cvswatch.common.events import Disposable, dispose_all, once_event
from cvswatch.process import (
    ExecutionFailedError,
    ExecutionRequest,
    ExecutionResult,
    OperationCancelledError,
    ProcessHandle,
    ProcessRunner,
)
from cvswatch.process.models import DEFAULT_ENCODING

from .status_parser import CvsStatusParser, StatusResult

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import os

    from cvswatch.common.cancellation import CancellationToken
    from cvswatch.common.events import Event

DEFAULT_STATUS_LIMIT = 5000
METADATA_DIR = "CVS"


class ExecOptions(typ.TypedDict, total=False):
    """Optional knobs accepted by :meth:`CvsClient.exec` and ``stream``."""

    stdin: str | None
    encoding: str
    cancellation_token: CancellationToken | None
    log: bool
    env: cabc.Mapping[str, str] | None


class CvsClient:
    """Run ``cvs`` subcommands scoped to a working directory."""

    def __init__(self, path: str | os.PathLike[str], *, version: str = "") -> None:
        """Bind the client to the binary at ``path``."""
        self.path = str(path)
        self.version = version
        self._runner = ProcessRunner(self.path)

    @property
    def on_output(self) -> Event[str]:
        """Diagnostic output published by every command this client runs."""
        return self._runner.on_output

    def open(self, repository: str | os.PathLike[str]) -> RepositoryHandle:
        """Return a handle bound to the repository root ``repository``."""
        return RepositoryHandle(self, Path(repository))

    async def init(self, repository: str | os.PathLike[str]) -> None:
        """Run ``cvs init`` in ``repository`` and wait for it to finish."""
        await self.exec(Path(repository), ["init"])

    async def get_repository_root(
        self, repository_path: str | os.PathLike[str]
    ) -> str:
        """Return the CVSROOT recorded in the working copy's ``CVS/Root``."""
        root_file = Path(repository_path) / METADATA_DIR / "Root"
        content = await asyncio.to_thread(root_file.read_text, encoding="utf-8")
        return content.split("\n")[0].strip()

    async def exec(
        self,
        cwd: Path,
        args: cabc.Sequence[str],
        **options: typ.Unpack[ExecOptions],
    ) -> ExecutionResult[str]:
        """Run ``cvs <args>`` in ``cwd`` to completion."""
        return await self._runner.run(_request(cwd, args, options))

    async def stream(
        self,
        cwd: Path,
        args: cabc.Sequence[str],
        **options: typ.Unpack[ExecOptions],
    ) -> ProcessHandle:
        """Start ``cvs <args>`` in ``cwd`` and return the live process handle."""
        return await self._runner.spawn(_request(cwd, args, options))


def _request(
    cwd: Path, args: cabc.Sequence[str], options: ExecOptions
) -> ExecutionRequest:
    return ExecutionRequest(
        cwd=cwd,
        args=tuple(args),
        stdin=options.get("stdin"),
        encoding=options.get("encoding", DEFAULT_ENCODING),
        cancellation_token=options.get("cancellation_token"),
        log=options.get("log", True),
        env=options.get("env"),
    )


class RepositoryHandle:
    """Per-repository façade that runs and parses ``cvs status``."""

    def __init__(self, client: CvsClient, root: Path) -> None:
        """Bind ``client`` to the repository at ``root``."""
        self._client = client
        self._root = root
        self.cvsroot = Memoized(lambda: client.get_repository_root(root))

    @property
    def root(self) -> Path:
        """Return the repository root directory."""
        return self._root

    async def stream(
        self, args: cabc.Sequence[str], **options: typ.Unpack[ExecOptions]
    ) -> ProcessHandle:
        """Start ``cvs <args>`` in the repository root."""
        return await self._client.stream(self._root, args, **options)

    async def get_status(
        self,
        limit: int = DEFAULT_STATUS_LIMIT,
        **options: typ.Unpack[ExecOptions],
    ) -> StatusResult:
        """Run ``cvs status`` and parse its output incrementally.

        Parameters
        ----------
        limit
            Maximum number of entries to return. When the parsed output grows
            past ``limit`` the process is killed and the first ``limit``
            entries are returned with ``did_hit_limit`` set.
        **options
            Execution options forwarded to the process runner. A
            ``cancellation_token`` cancelled while the command runs kills it.

        Raises
        ------
        SpawnNotFoundError
            If the client binary cannot be executed.
        OperationCancelledError
            If the cancellation token fires before the output is complete.
        ExecutionFailedError
            If the status command exits non-zero before reaching ``limit``.

        """
        parser = CvsStatusParser()
        handle = await self.stream(["status"], **options)
        stderr_task = asyncio.ensure_future(handle.read_stderr())
        disposables: list[Disposable] = []
        cancelled = False

        def on_cancel(_: None) -> None:
            nonlocal cancelled
            cancelled = True
            handle.kill()

        token = options.get("cancellation_token")
        if token is not None:
            disposables.append(once_event(token.on_cancellation_requested)(on_cancel))
            if token.is_cancellation_requested:
                on_cancel(None)

        try:
            async with contextlib.aclosing(handle.iter_stdout()) as chunks:
                async for chunk in chunks:
                    parser.update(chunk)
                    if len(parser.status) > limit:
                        break

            if not cancelled and len(parser.status) > limit:
                return StatusResult(
                    status=tuple(parser.status[:limit]), did_hit_limit=True
                )

            parser.finish()
            exit_code = await handle.wait()
            stderr = await stderr_task
            if cancelled:
                raise OperationCancelledError.cancelled("status")
        finally:
            dispose_all(disposables)
            if handle.returncode is None:
                handle.kill()
                await handle.wait()
            if not stderr_task.done():
                stderr_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await stderr_task

        if exit_code != 0:
            raise ExecutionFailedError.for_exit("status", exit_code, stderr=stderr)

        if len(parser.status) > limit:
            return StatusResult(
                status=tuple(parser.status[:limit]), did_hit_limit=True
            )
        return StatusResult(status=tuple(parser.status), did_hit_limit=False)


__all__ = [
    "DEFAULT_STATUS_LIMIT",
    "METADATA_DIR",
    "CvsClient",
    "ExecOptions",
    "RepositoryHandle",
]
