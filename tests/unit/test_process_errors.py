"""Unit tests for the client error hierarchy."""

from __future__ import annotations

import json

import pytest

from cvswatch.process import (
    ClientNotFoundError,
    CvsError,
    CvsErrorCode,
    ExecutionFailedError,
    OperationCancelledError,
    SpawnNotFoundError,
    error_hint,
    get_cvs_error_code,
)


@pytest.mark.parametrize(
    ("stderr", "expected"),
    [
        pytest.param(
            "cvs commit: [12:00:01] waiting for alice's lock in /cvs/proj",
            CvsErrorCode.REPOSITORY_IS_LOCKED,
            id="lock",
        ),
        pytest.param(
            "cvs status: No CVSROOT specified!", CvsErrorCode.NO_CVSROOT, id="root"
        ),
        pytest.param(
            "cvs status: cannot open CVS/Entries for reading",
            CvsErrorCode.NOT_A_CVS_REPOSITORY,
            id="not-a-working-copy",
        ),
        pytest.param(
            "cvs [status aborted]: connect to cvs.example.org(1.2.3.4):2401 failed",
            CvsErrorCode.CONNECTION_REFUSED,
            id="connection",
        ),
        pytest.param(
            "cvs [login aborted]: authorization failed: server rejected access",
            CvsErrorCode.AUTHENTICATION_FAILED,
            id="auth",
        ),
        pytest.param("cvs status: something else", None, id="unknown"),
    ],
)
def test_get_cvs_error_code(stderr: str, expected: CvsErrorCode | None) -> None:
    """Known diagnostics map to stable error codes."""
    assert get_cvs_error_code(stderr) == expected, (
        f"Expected {expected} for {stderr!r}."
    )


def test_execution_failed_carries_diagnostics() -> None:
    """for_exit records the process outcome and classifies stderr."""
    error = ExecutionFailedError.for_exit(
        "status", 1, stderr="cvs status: No CVSROOT specified!\n", stdout=""
    )

    assert error.message == "Failed to execute cvs", "Expected the standard message."
    assert error.exit_code == 1, "Expected the exit code."
    assert error.cvs_command == "status", "Expected the command name."
    assert error.cvs_error_code is CvsErrorCode.NO_CVSROOT, "Expected NO_CVSROOT."
    assert isinstance(error, CvsError), "Expected a CvsError subclass."


def test_str_renders_message_and_json_details() -> None:
    """str() shows the message followed by a JSON payload."""
    error = ExecutionFailedError.for_exit("status", 2, stderr="boom")

    message, _, payload = str(error).partition(" {")
    details = json.loads("{" + payload)

    assert message == "Failed to execute cvs", "Expected the message first."
    assert details["exitCode"] == 2, "Expected the exit code in the payload."
    assert details["cvsCommand"] == "status", "Expected the command in the payload."
    assert details["stderr"] == "boom", "Expected stderr in the payload."


def test_spawn_not_found_from_os_error() -> None:
    """Spawn failures keep the OS error text as stderr."""
    exc = FileNotFoundError(2, "No such file or directory", "/opt/cvs/bin/cvs")

    error = SpawnNotFoundError.from_os_error(exc, "status")

    assert error.message == "Failed to execute cvs (ENOENT): /opt/cvs/bin/cvs", (
        "Expected the missing path in the message."
    )
    assert error.stderr == "No such file or directory", "Expected strerror."
    assert error.cvs_error_code is CvsErrorCode.CVS_NOT_FOUND, "Expected not found."


def test_default_message() -> None:
    """A CvsError without a message falls back to a generic one."""
    assert CvsError().message == "CVS error", "Expected the generic message."


def test_wrapped_error_supplies_message() -> None:
    """An underlying error's text becomes the message."""
    error = CvsError("ignored", error=OSError("disk full"))
    assert error.message == "disk full", "Expected the wrapped error's text."


def test_cancelled_and_not_installed_factories() -> None:
    """Factory classmethods set the matching error codes."""
    cancelled = OperationCancelledError.cancelled("status")
    missing = ClientNotFoundError.not_installed("cvs: not on PATH")

    assert cancelled.cvs_error_code is CvsErrorCode.CANCELLED, "Expected CANCELLED."
    assert cancelled.message == "Cancelled", "Expected the cancelled message."
    assert missing.message == "CVS installation not found.", "Expected message."
    assert missing.stderr == "cvs: not on PATH", "Expected the detail as stderr."


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        pytest.param(
            ExecutionFailedError.for_exit(
                "status", 1, stderr="cvs status: cannot open status file\n"
            ),
            "cannot open status file",
            id="command-prefix",
        ),
        pytest.param(
            ExecutionFailedError.for_exit(
                "update",
                1,
                stderr=(
                    "cvs update: Examining .\n"
                    "cvs [update aborted]: no repository\n"
                ),
            ),
            "no repository",
            id="aborted-prefix",
        ),
        pytest.param(RuntimeError("plain failure"), "plain failure", id="plain"),
        pytest.param(
            ExecutionFailedError.for_exit("status", 1, stderr=""),
            "Failed to execute cvs",
            id="falls-back-to-message",
        ),
        pytest.param(RuntimeError("\n\n"), None, id="blank"),
    ],
)
def test_error_hint(error: BaseException, expected: str | None) -> None:
    """error_hint returns the first meaningful line without the prefix."""
    assert error_hint(error) == expected, f"Expected hint {expected!r}."
