"""Value objects exchanged with the process runner."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import dataclasses
import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path

    from cvswatch.common.cancellation import CancellationToken

DEFAULT_ENCODING = "utf-8"
_READ_CHUNK_SIZE = 64 * 1024


def resolve_encoding(encoding: str | None) -> str:
    """Return ``encoding`` when Python supports it, else UTF-8."""
    if not encoding:
        return DEFAULT_ENCODING
    try:
        return codecs.lookup(encoding).name
    except LookupError:
        return DEFAULT_ENCODING


@dataclasses.dataclass(frozen=True, slots=True)
class ExecutionRequest:
    """One invocation of the client binary.

    Attributes
    ----------
    cwd
        Working directory for the process.
    args
        Arguments passed after the binary path.
    stdin
        Text written to the process before its stdin is closed. When ``None``
        stdin is attached to the null device.
    encoding
        Codec used to decode stdout; unknown codecs fall back to UTF-8.
    cancellation_token
        Token that kills the process when cancellation is requested.
    log
        Whether stderr text is published on the runner's output sink.
    env
        Extra environment variables layered over the current environment.

    """

    cwd: Path
    args: tuple[str, ...]
    stdin: str | None = None
    encoding: str = DEFAULT_ENCODING
    cancellation_token: CancellationToken | None = None
    log: bool = True
    env: cabc.Mapping[str, str] | None = None

    @property
    def command(self) -> str:
        """Return the client subcommand, used to label failures."""
        return self.args[0] if self.args else ""


@dataclasses.dataclass(frozen=True, slots=True)
class ExecutionResult[T: (str, bytes)]:
    """Outcome of a completed invocation."""

    exit_code: int
    stdout: T
    stderr: str


class ProcessHandle:
    """Streaming access to a spawned client process."""

    def __init__(
        self, process: asyncio.subprocess.Process, request: ExecutionRequest
    ) -> None:
        """Wrap a running process started for ``request``."""
        self._process = process
        self.request = request

    @property
    def pid(self) -> int:
        """Return the operating-system process id."""
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        """Return the exit status, or ``None`` while running."""
        return self._process.returncode

    @property
    def stdout(self) -> asyncio.StreamReader:
        """Return the raw stdout stream."""
        if self._process.stdout is None:  # pragma: no cover - always piped
            msg = "stdout is not piped"
            raise RuntimeError(msg)
        return self._process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader:
        """Return the raw stderr stream."""
        if self._process.stderr is None:  # pragma: no cover - always piped
            msg = "stderr is not piped"
            raise RuntimeError(msg)
        return self._process.stderr

    async def iter_stdout(self) -> cabc.AsyncIterator[str]:
        """Yield decoded stdout chunks as they arrive.

        Multi-byte characters split across reads are held back until the
        rest of the sequence arrives.
        """
        decoder_factory = codecs.getincrementaldecoder(
            resolve_encoding(self.request.encoding)
        )
        decoder = decoder_factory(errors="replace")
        while chunk := await self.stdout.read(_READ_CHUNK_SIZE):
            text = decoder.decode(chunk)
            if text:
                yield text
        tail = decoder.decode(b"", final=True)
        if tail:
            yield tail

    async def read_stderr(self) -> str:
        """Read stderr to end of stream as UTF-8 text."""
        return (await self.stderr.read()).decode("utf-8", errors="replace")

    async def feed_stdin(self) -> None:
        """Write the request's stdin text and close the pipe."""
        pipe = self._process.stdin
        if pipe is None:
            return
        if self.request.stdin:
            pipe.write(self.request.stdin.encode("utf-8"))
        with contextlib.suppress(BrokenPipeError, ConnectionResetError):
            await pipe.drain()
        pipe.close()

    async def wait(self) -> int:
        """Wait for the process to exit and return its status."""
        return await self._process.wait()

    def kill(self) -> None:
        """Kill the process; failures (already exited, no permission) are ignored."""
        with contextlib.suppress(ProcessLookupError, OSError):
            self._process.kill()


__all__ = [
    "DEFAULT_ENCODING",
    "ExecutionRequest",
    "ExecutionResult",
    "ProcessHandle",
    "resolve_encoding",
]
