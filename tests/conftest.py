"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import typing as typ

import pytest

from tests.helpers.fake_cvs import (
    FakeCvs,
    make_working_copy,
    write_fake_cvs,
)

if typ.TYPE_CHECKING:
    from pathlib import Path

CVSWATCH_ENV_VARS = (
    "CVSWATCH_ENABLED",
    "CVSWATCH_CVS_PATH",
    "CVSWATCH_LOG_LEVEL",
    "CVSWATCH_STATUS_LIMIT",
    "CVSWATCH_DEBOUNCE_SECONDS",
)


@pytest.fixture(autouse=True)
def _clean_cvswatch_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's CVSWATCH_* variables out of every test."""
    for name in CVSWATCH_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def bin_dir(tmp_path: Path) -> Path:
    """Return the directory fake client binaries are written to."""
    return tmp_path / "bin"


@pytest.fixture
def fake_cvs(bin_dir: Path) -> FakeCvs:
    """Return a fake client reporting one modified and one deleted file."""
    return write_fake_cvs(bin_dir, stdout="M foo.txt\nD bar.txt\n")


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    """Return an empty workspace folder."""
    root = tmp_path / "ws"
    root.mkdir()
    return root


@pytest.fixture
def working_copy(workspace_root: Path) -> Path:
    """Return a checked-out working copy inside the workspace folder."""
    return make_working_copy(workspace_root / "proj")
