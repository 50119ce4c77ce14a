"""Errors raised while running the external ``cvs`` client.

Every failure of the process layer is a :class:`CvsError`. The subclasses
distinguish the error kinds callers react to differently:

- :class:`SpawnNotFoundError` when the binary cannot be executed at all;
- :class:`ExecutionFailedError` when the client exits non-zero;
- :class:`OperationCancelledError` when a cancellation token fires;
- :class:`ClientNotFoundError` when no client is discovered at startup.

:func:`get_cvs_error_code` classifies well-known stderr diagnostics so that
retry policies and presentation layers can match on a stable code.
"""

from __future__ import annotations

import enum
import re

import msgspec


class CvsErrorCode(enum.StrEnum):
    """Stable identifiers for classified client failures."""

    CVS_NOT_FOUND = "CvsNotFound"
    NOT_A_CVS_REPOSITORY = "NotACvsRepository"
    NO_CVSROOT = "NoCvsRoot"
    REPOSITORY_IS_LOCKED = "RepositoryIsLocked"
    CONNECTION_REFUSED = "ConnectionRefused"
    AUTHENTICATION_FAILED = "AuthenticationFailed"
    CANCELLED = "Cancelled"


_STDERR_PATTERNS: tuple[tuple[re.Pattern[str], CvsErrorCode], ...] = (
    (
        re.compile(r"waiting for \S+ lock in", re.IGNORECASE),
        CvsErrorCode.REPOSITORY_IS_LOCKED,
    ),
    (re.compile(r"No CVSROOT specified"), CvsErrorCode.NO_CVSROOT),
    (
        re.compile(
            r"there is no version here|cannot open CVS/(?:Entries|Repository|Root)"
        ),
        CvsErrorCode.NOT_A_CVS_REPOSITORY,
    ),
    (
        re.compile(r"connect to \S+ failed|Connection refused", re.IGNORECASE),
        CvsErrorCode.CONNECTION_REFUSED,
    ),
    (
        re.compile(r"authorization failed|used empty password|I HATE YOU"),
        CvsErrorCode.AUTHENTICATION_FAILED,
    ),
)


def get_cvs_error_code(stderr: str) -> CvsErrorCode | None:
    """Classify a client diagnostic, returning ``None`` when unrecognized.

    Examples
    --------
    >>> get_cvs_error_code("cvs update: waiting for bob's lock in /cvs/proj")
    <CvsErrorCode.REPOSITORY_IS_LOCKED: 'RepositoryIsLocked'>

    """
    for pattern, code in _STDERR_PATTERNS:
        if pattern.search(stderr):
            return code
    return None


class CvsError(Exception):
    """Base class for failures talking to the ``cvs`` client.

    Attributes
    ----------
    message
        Short description of the failure.
    stdout
        Decoded standard output, when the process ran.
    stderr
        Decoded standard error, when the process ran.
    exit_code
        Process exit status, when the process exited.
    cvs_error_code
        Classified failure code, when recognized.
    cvs_command
        Client subcommand that failed (``status``, ``init`` ...).

    """

    def __init__(  # noqa: PLR0913 - mirrors the diagnostic payload
        self,
        message: str | None = None,
        *,
        error: BaseException | None = None,
        stdout: str | None = None,
        stderr: str | None = None,
        exit_code: int | None = None,
        cvs_error_code: CvsErrorCode | None = None,
        cvs_command: str | None = None,
    ) -> None:
        """Initialise the error; an underlying ``error`` supplies the message."""
        self.error = error
        self.message = (str(error) if error else "") or message or "CVS error"
        self.stdout = stdout
        self.stderr = stderr
        self.exit_code = exit_code
        self.cvs_error_code = cvs_error_code
        self.cvs_command = cvs_command
        super().__init__(self.message)

    def details(self) -> dict[str, object]:
        """Return the structured diagnostic payload."""
        return {
            "exitCode": self.exit_code,
            "cvsErrorCode": self.cvs_error_code,
            "cvsCommand": self.cvs_command,
            "stdout": self.stdout,
            "stderr": self.stderr,
        }

    def __str__(self) -> str:
        """Render the message followed by the JSON diagnostic payload."""
        payload = msgspec.json.format(msgspec.json.encode(self.details()), indent=2)
        return f"{self.message} {payload.decode('utf-8')}"


class SpawnNotFoundError(CvsError):
    """Raised when the client binary is missing or not executable."""

    @classmethod
    def from_os_error(
        cls, exc: OSError, command: str | None = None
    ) -> SpawnNotFoundError:
        """Wrap the ``OSError`` raised by the spawn attempt."""
        return cls(
            f"Failed to execute cvs (ENOENT): {exc.filename or exc}",
            stderr=exc.strerror,
            cvs_error_code=CvsErrorCode.CVS_NOT_FOUND,
            cvs_command=command,
        )

    @classmethod
    def missing_path(cls) -> SpawnNotFoundError:
        """Return an error for a runner constructed without a binary path."""
        return cls(
            "cvs could not be found in the system.",
            cvs_error_code=CvsErrorCode.CVS_NOT_FOUND,
        )


class ExecutionFailedError(CvsError):
    """Raised when the client exits with a non-zero status."""

    @classmethod
    def for_exit(
        cls,
        command: str,
        exit_code: int,
        *,
        stderr: str,
        stdout: str | None = None,
    ) -> ExecutionFailedError:
        """Build the error for a finished process, classifying its stderr."""
        return cls(
            "Failed to execute cvs",
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            cvs_error_code=get_cvs_error_code(stderr),
            cvs_command=command,
        )


class OperationCancelledError(CvsError):
    """Raised when a cancellation token fires before the client finished."""

    @classmethod
    def cancelled(cls, command: str | None = None) -> OperationCancelledError:
        """Return the error for a cancelled invocation."""
        return cls(
            "Cancelled",
            cvs_error_code=CvsErrorCode.CANCELLED,
            cvs_command=command,
        )


class ClientNotFoundError(CvsError):
    """Raised when client discovery fails at startup."""

    @classmethod
    def not_installed(cls, detail: str | None = None) -> ClientNotFoundError:
        """Return the error shown when no usable ``cvs`` was found."""
        return cls(
            "CVS installation not found.",
            stderr=detail,
            cvs_error_code=CvsErrorCode.CVS_NOT_FOUND,
        )


_COMMAND_PREFIX = re.compile(r"^cvs(?: \[[^\]]*\]| [\w-]+)?: ", re.MULTILINE)


def error_hint(error: BaseException) -> str | None:
    """Extract a single-line, human-readable hint from ``error``.

    The hint is the first non-empty line of the error's stderr (or message),
    with the ``cvs <command>:`` prefix removed and directory progress lines
    skipped. ``None`` means no usable hint exists.

    Examples
    --------
    >>> failure = ExecutionFailedError.for_exit(
    ...     "status", 1, stderr="cvs status: cannot open status file\\n"
    ... )
    >>> error_hint(failure)
    'cannot open status file'

    """
    if isinstance(error, CvsError):
        text = error.stderr or error.message
    else:
        text = str(error)

    for raw_line in _COMMAND_PREFIX.sub("", text or "").splitlines():
        line = raw_line.strip()
        if line and not line.startswith("Examining "):
            return line
    return None


__all__ = [
    "ClientNotFoundError",
    "CvsError",
    "CvsErrorCode",
    "ExecutionFailedError",
    "OperationCancelledError",
    "SpawnNotFoundError",
    "error_hint",
    "get_cvs_error_code",
]
