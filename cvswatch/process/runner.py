"""Spawn the external ``cvs`` client and collect its output.

:class:`ProcessRunner` is the only place cvswatch starts subprocesses. It
offers two entry points:

- :meth:`ProcessRunner.run` waits until the process has exited *and* both
  output streams have closed, then returns an :class:`ExecutionResult` or
  raises a :class:`~cvswatch.process.errors.CvsError` subclass;
- :meth:`ProcessRunner.spawn` returns a :class:`ProcessHandle` for callers
  that consume output incrementally.

Cancellation is cooperative. A token that is already cancelled prevents the
spawn. A token cancelled while the process runs kills it and fails the call;
the listener registered on the token is removed whatever wins the race.
"""

from __future__ import annotations

import asyncio
import os
import typing as typ

from cvswatch.common.events import Disposable, Emitter, Event, dispose_all, once_event
from cvswatch.logging import get_logger, log_command, log_debug, log_warning

from .errors import ExecutionFailedError, OperationCancelledError, SpawnNotFoundError
from .models import ExecutionRequest, ExecutionResult, ProcessHandle, resolve_encoding

if typ.TYPE_CHECKING:
    from pathlib import Path

    from cvswatch.common.cancellation import CancellationToken

logger = get_logger(__name__)


class ProcessRunner:
    """Run the client binary at ``binary`` on behalf of cvswatch."""

    def __init__(self, binary: str | Path) -> None:
        """Bind the runner to the resolved client binary."""
        self.binary = os.fspath(binary) if binary else ""
        self._on_output: Emitter[str] = Emitter()

    @property
    def on_output(self) -> Event[str]:
        """Event carrying diagnostic text for an output channel."""
        return self._on_output.event

    async def spawn(self, request: ExecutionRequest) -> ProcessHandle:
        """Start the client for ``request`` without waiting for it.

        Raises
        ------
        OperationCancelledError
            If the request's token was cancelled before the spawn.
        SpawnNotFoundError
            If the binary is missing or cannot be executed.

        """
        if not self.binary:
            raise SpawnNotFoundError.missing_path()

        token = request.cancellation_token
        if token is not None and token.is_cancellation_requested:
            raise OperationCancelledError.cancelled(request.command)

        log_command(logger, request.args, request.cwd)
        env = {**os.environ, **request.env} if request.env is not None else None
        stdin = (
            asyncio.subprocess.PIPE
            if request.stdin is not None
            else asyncio.subprocess.DEVNULL
        )

        try:
            process = await asyncio.create_subprocess_exec(
                self.binary,
                *request.args,
                cwd=request.cwd,
                env=env,
                stdin=stdin,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as exc:
            raise SpawnNotFoundError.from_os_error(exc, request.command) from exc

        return ProcessHandle(process, request)

    async def run(self, request: ExecutionRequest) -> ExecutionResult[str]:
        """Run ``request`` to completion.

        Returns
        -------
        ExecutionResult[str]
            Exit code, stdout decoded with the request's encoding, and stderr.

        Raises
        ------
        OperationCancelledError
            If the request's token fires before the process finished.
        SpawnNotFoundError
            If the binary is missing or cannot be executed.
        ExecutionFailedError
            If the process exits with a non-zero status.

        """
        handle = await self.spawn(request)
        buffered = await self._collect(handle, request.cancellation_token)

        if request.log and buffered.stderr:
            self._log(buffered.stderr)

        result = ExecutionResult(
            exit_code=buffered.exit_code,
            stdout=buffered.stdout.decode(
                resolve_encoding(request.encoding), errors="replace"
            ),
            stderr=buffered.stderr,
        )

        if result.exit_code:
            log_warning(
                logger,
                "cvs %s exited with code %d",
                request.command,
                result.exit_code,
            )
            self._on_output.fire(
                f"cvs {request.command} exited with code {result.exit_code}\n"
            )
            raise ExecutionFailedError.for_exit(
                request.command,
                result.exit_code,
                stderr=result.stderr,
                stdout=result.stdout,
            )

        return result

    async def _collect(
        self, handle: ProcessHandle, token: CancellationToken | None
    ) -> ExecutionResult[bytes]:
        """Join exit, stdout close and stderr close, racing cancellation."""
        completion = asyncio.ensure_future(self._join(handle))
        disposables: list[Disposable] = []
        try:
            if token is None:
                return await completion

            cancelled: asyncio.Future[None] = (
                asyncio.get_running_loop().create_future()
            )

            def on_cancel(_: None) -> None:
                handle.kill()
                if not cancelled.done():
                    cancelled.set_result(None)

            disposables.append(once_event(token.on_cancellation_requested)(on_cancel))
            if token.is_cancellation_requested:
                # Cancelled while the spawn was being awaited.
                on_cancel(None)

            await asyncio.wait(
                {completion, cancelled}, return_when=asyncio.FIRST_COMPLETED
            )
            if cancelled.done():
                completion.cancel()
                raise OperationCancelledError.cancelled(handle.request.command)

            cancelled.cancel()
            return completion.result()
        except asyncio.CancelledError:
            completion.cancel()
            raise
        finally:
            dispose_all(disposables)
            if handle.returncode is None:
                handle.kill()
                await handle.wait()

    @staticmethod
    async def _join(handle: ProcessHandle) -> ExecutionResult[bytes]:
        stdout, stderr, _ = await asyncio.gather(
            handle.stdout.read(), handle.read_stderr(), handle.feed_stdin()
        )
        exit_code = await handle.wait()
        return ExecutionResult(exit_code=exit_code, stdout=stdout, stderr=stderr)

    def _log(self, output: str) -> None:
        log_debug(logger, "%s", output.rstrip())
        self._on_output.fire(output)


__all__ = ["ProcessRunner"]
