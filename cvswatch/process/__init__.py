"""Subprocess execution layer for the ``cvs`` client.

Usage
-----
Run a command and inspect its output::

    from pathlib import Path

    from cvswatch.process import ExecutionRequest, ProcessRunner

    runner = ProcessRunner("/usr/bin/cvs")
    result = await runner.run(ExecutionRequest(cwd=Path("/ws/proj"), args=("status",)))
    print(result.stdout)

"""

from __future__ import annotations

from cvswatch.process.errors import (
    ClientNotFoundError,
    CvsError,
    CvsErrorCode,
    ExecutionFailedError,
    OperationCancelledError,
    SpawnNotFoundError,
    error_hint,
    get_cvs_error_code,
)
from cvswatch.process.models import (
    ExecutionRequest,
    ExecutionResult,
    ProcessHandle,
    resolve_encoding,
)
from cvswatch.process.runner import ProcessRunner

__all__ = [
    "ClientNotFoundError",
    "CvsError",
    "CvsErrorCode",
    "ExecutionFailedError",
    "ExecutionRequest",
    "ExecutionResult",
    "OperationCancelledError",
    "ProcessHandle",
    "ProcessRunner",
    "SpawnNotFoundError",
    "error_hint",
    "get_cvs_error_code",
    "resolve_encoding",
]
