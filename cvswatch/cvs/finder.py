"""Discovery of the ``cvs`` client binary.

The finder runs once at startup: it locates the binary (an explicit path from
configuration, else ``cvs`` on ``PATH``), checks that it executes by running
``cvs --version`` and extracts a readable version string. Any failure becomes
:class:`~cvswatch.process.ClientNotFoundError`, which aborts activation.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import re
import shutil
import typing as typ

from cvswatch.common.concurrency import Memoized
from cvswatch.logging import get_logger, log_info
from cvswatch.process import ClientNotFoundError

if typ.TYPE_CHECKING:
    import os

logger = get_logger(__name__)

_VERSION_PATTERN = re.compile(r"\d+\.\d+\.\d+(?: \(client/server\))?")
_VERSION_TIMEOUT_S = 10.0


@dataclasses.dataclass(frozen=True, slots=True)
class CvsClientInfo:
    """Resolved client binary and the version it reports."""

    path: str
    version: str


def parse_version(raw: str) -> str:
    """Extract the version from ``cvs --version`` output.

    Falls back to the first non-empty line when no version number is found.

    Examples
    --------
    >>> parse_version("\\nConcurrent Versions System (CVS) 1.12.13 (client/server)\\n")
    '1.12.13 (client/server)'
    >>> parse_version("custom build")
    'custom build'

    """
    match = _VERSION_PATTERN.search(raw)
    if match:
        return match.group(0)
    lines = [line.strip() for line in raw.splitlines() if line.strip()]
    return lines[0] if lines else ""


class CvsFinder:
    """Locate and validate the ``cvs`` binary, once per finder."""

    def __init__(self, explicit_path: str | os.PathLike[str] | None = None) -> None:
        """Prefer ``explicit_path`` over a ``PATH`` lookup when given."""
        self._explicit_path = explicit_path
        self.find_cvs = Memoized(self._find_cvs)

    async def _find_cvs(self) -> CvsClientInfo:
        path = self._resolve_path()
        if path is None:
            raise ClientNotFoundError.not_installed("cvs executable not found on PATH")

        version = await self._read_version(path)
        info = CvsClientInfo(path=path, version=version)
        log_info(logger, "Using CVS from %s version %s", info.path, info.version)
        return info

    def _resolve_path(self) -> str | None:
        if self._explicit_path:
            return shutil.which(str(self._explicit_path))
        return shutil.which("cvs")

    @staticmethod
    async def _read_version(path: str) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                path,
                "--version",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ClientNotFoundError.not_installed(str(exc)) from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=_VERSION_TIMEOUT_S
            )
        except TimeoutError as exc:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            raise ClientNotFoundError.not_installed(
                f"{path} --version did not finish within {_VERSION_TIMEOUT_S}s"
            ) from exc

        if process.returncode != 0:
            raise ClientNotFoundError.not_installed(
                stderr.decode("utf-8", errors="replace").strip()
            )
        return parse_version(stdout.decode("utf-8", errors="replace").strip())


__all__ = ["CvsClientInfo", "CvsFinder", "parse_version"]
