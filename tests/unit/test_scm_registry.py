"""Unit tests for the repository registry."""

from __future__ import annotations

import asyncio
import threading
import typing as typ

import pytest

from cvswatch.common.paths import canonical_path
from cvswatch.cvs import CvsClient
from cvswatch.scm import ModelChangeEvent, Registry, RepositoryState
from cvswatch.scm import registry as registry_module
from cvswatch.workspace import LocalWorkspace
from tests.helpers.fake_cvs import make_working_copy
from tests.helpers.fake_logger import FakeLogger
from tests.helpers.polling import wait_until

if typ.TYPE_CHECKING:
    from pathlib import Path

    from cvswatch.config import RepositorySettings
    from cvswatch.scm import Repository
    from tests.helpers.fake_cvs import FakeCvs


class _GatedWorkspace(LocalWorkspace):
    """Workspace whose settings lookup blocks until released."""

    def __init__(self, folders: tuple[Path, ...]) -> None:
        super().__init__(folders)
        self.entered = threading.Event()
        self.release = threading.Event()

    def settings_for(self, path: Path) -> RepositorySettings:
        self.entered.set()
        self.release.wait(timeout=5)
        return super().settings_for(path)


async def _registry(fake_cvs: FakeCvs, *folders: Path) -> Registry:
    registry = Registry(
        CvsClient(fake_cvs.path), LocalWorkspace(folders), refresh_delay=60.0
    )
    await registry.initial_scan
    return registry


class TestDiscovery:
    """Tests for scanning and opening repositories."""

    @pytest.mark.asyncio
    async def test_initial_scan_opens_working_copies(
        self, fake_cvs: FakeCvs, working_copy: Path, workspace_root: Path
    ) -> None:
        """Folders holding a CVS directory are opened; others are skipped."""
        plain = workspace_root / "plain"
        plain.mkdir()

        registry = await _registry(fake_cvs, working_copy, plain)

        assert [r.root for r in registry.repositories] == [
            canonical_path(working_copy)
        ], "Expected only the working copy to open."
        registry.dispose()

    @pytest.mark.asyncio
    async def test_missing_folder_is_skipped(
        self, fake_cvs: FakeCvs, workspace_root: Path
    ) -> None:
        """An unreadable folder does not abort the scan."""
        registry = await _registry(fake_cvs, workspace_root / "missing")

        assert registry.repositories == (), "Expected nothing to open."
        registry.dispose()

    @pytest.mark.asyncio
    async def test_concurrent_opens_yield_one_repository(
        self, fake_cvs: FakeCvs, working_copy: Path
    ) -> None:
        """Two opens of the same path produce one repository and one event."""
        registry = await _registry(fake_cvs)
        opened: list[Repository] = []
        registry.on_did_open_repository(opened.append)

        await asyncio.gather(
            registry.try_open_repository(working_copy),
            registry.try_open_repository(working_copy / "."),
        )

        assert len(registry.repositories) == 1, "Expected a single repository."
        assert opened == list(registry.repositories), "Expected one open event."
        registry.dispose()

    @pytest.mark.asyncio
    async def test_subfolder_of_open_repository_is_not_reopened(
        self, fake_cvs: FakeCvs, working_copy: Path
    ) -> None:
        """Opening a path inside an open repository is a no-op."""
        nested = make_working_copy(working_copy / "module")
        registry = await _registry(fake_cvs, working_copy)

        await registry.try_open_repository(nested)

        assert len(registry.repositories) == 1, "Expected the ancestor to win."
        registry.dispose()

    @pytest.mark.asyncio
    async def test_disabled_by_settings_file(
        self, fake_cvs: FakeCvs, working_copy: Path
    ) -> None:
        """enabled: false in .cvswatch.yaml keeps the repository closed."""
        (working_copy / ".cvswatch.yaml").write_text("enabled: false\n")

        registry = await _registry(fake_cvs, working_copy)

        assert registry.repositories == (), "Expected the repository to stay shut."
        registry.dispose()

    @pytest.mark.asyncio
    async def test_invalid_settings_file_is_logged(
        self,
        fake_cvs: FakeCvs,
        working_copy: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A broken settings file is reported and the scan carries on."""
        logger = FakeLogger()
        monkeypatch.setattr(registry_module, "logger", logger)
        (working_copy / ".cvswatch.yaml").write_text("status_limit: -1\n")

        registry = await _registry(fake_cvs, working_copy)

        assert registry.repositories == (), "Expected the repository to stay shut."
        assert logger.messages("ERROR") == [
            f"Failed to open repository at {canonical_path(working_copy)}"
        ], "Expected the failure to be logged."
        registry.dispose()

    @pytest.mark.asyncio
    async def test_settings_file_applies_to_repository(
        self, fake_cvs: FakeCvs, working_copy: Path
    ) -> None:
        """Settings from .cvswatch.yaml reach the repository."""
        (working_copy / ".cvswatch.yaml").write_text(
            "status_limit: 7\nautorefresh: false\n"
        )

        registry = await _registry(fake_cvs, working_copy)

        (repository,) = registry.repositories
        assert repository.settings.status_limit == 7, "Expected the file's limit."
        assert repository.settings.autorefresh is False, (
            "Expected the file to disable autorefresh."
        )
        registry.dispose()


class TestLookup:
    """Tests for Registry.get_repository."""

    @pytest.mark.asyncio
    async def test_longest_root_wins(
        self, fake_cvs: FakeCvs, working_copy: Path
    ) -> None:
        """Nested repositories resolve paths to the innermost root."""
        nested = make_working_copy(working_copy / "module")
        registry = await _registry(fake_cvs)
        await registry.try_open_repository(nested)
        await registry.try_open_repository(working_copy)

        inner = registry.get_repository(nested / "src" / "main.c")
        outer = registry.get_repository(working_copy / "README")

        assert inner is not None, "Expected a repository for the nested path."
        assert inner.root == canonical_path(nested), "Expected the inner root."
        assert outer is not None, "Expected a repository for the outer path."
        assert outer.root == canonical_path(working_copy), "Expected the outer root."
        assert registry.get_repository(inner) is inner, (
            "Expected a repository hint to resolve to itself."
        )
        assert registry.get_repository("") is None, "Expected no match for ''."
        registry.dispose()

    @pytest.mark.asyncio
    async def test_unrelated_path_has_no_repository(
        self, fake_cvs: FakeCvs, working_copy: Path, workspace_root: Path
    ) -> None:
        """Paths outside every root resolve to None."""
        registry = await _registry(fake_cvs, working_copy)

        assert registry.get_repository(workspace_root / "projector") is None, (
            "Expected a sibling with a shared prefix not to match."
        )
        registry.dispose()


class TestLifecycle:
    """Tests for closing repositories and disposing the registry."""

    @pytest.mark.asyncio
    async def test_close_repository_fires_event(
        self, fake_cvs: FakeCvs, working_copy: Path
    ) -> None:
        """Closing disposes the repository and announces it once."""
        registry = await _registry(fake_cvs, working_copy)
        (repository,) = registry.repositories
        closed: list[Repository] = []
        registry.on_did_close_repository(closed.append)

        registry.close_repository(repository)
        registry.close_repository(repository)

        assert closed == [repository], "Expected one close event."
        assert repository.state is RepositoryState.DISPOSED, "Expected DISPOSED."
        assert registry.repositories == (), "Expected the registry to be empty."
        registry.dispose()

    @pytest.mark.asyncio
    async def test_disposed_repository_leaves_registry(
        self, fake_cvs: FakeCvs, working_copy: Path
    ) -> None:
        """Disposing a repository directly also unregisters it."""
        registry = await _registry(fake_cvs, working_copy)
        (repository,) = registry.repositories

        repository.dispose()

        assert registry.repositories == (), "Expected the entry to be removed."
        registry.dispose()

    @pytest.mark.asyncio
    async def test_dispose_during_open_discards_the_repository(
        self, fake_cvs: FakeCvs, working_copy: Path
    ) -> None:
        """An open still reading settings when the registry goes away is dropped."""
        workspace = _GatedWorkspace(())
        registry = Registry(CvsClient(fake_cvs.path), workspace, refresh_delay=60.0)
        await registry.initial_scan

        task = asyncio.ensure_future(registry.try_open_repository(working_copy))
        await wait_until(workspace.entered.is_set)
        registry.dispose()
        workspace.release.set()
        await asyncio.wait_for(task, timeout=5)

        assert registry.repositories == (), "Expected nothing to open after dispose."

    @pytest.mark.asyncio
    async def test_dispose_closes_everything(
        self, fake_cvs: FakeCvs, working_copy: Path
    ) -> None:
        """After dispose no repository is open and none can be opened."""
        registry = await _registry(fake_cvs, working_copy)
        (repository,) = registry.repositories

        registry.dispose()
        registry.dispose()
        await registry.try_open_repository(working_copy)

        assert repository.state is RepositoryState.DISPOSED, "Expected DISPOSED."
        assert registry.repositories == (), "Expected nothing to reopen."


class TestWorkspaceEvents:
    """Tests for reacting to workspace changes."""

    @pytest.mark.asyncio
    async def test_file_changes_are_republished(
        self, fake_cvs: FakeCvs, working_copy: Path
    ) -> None:
        """A change inside a repository is forwarded with the repository."""
        workspace = LocalWorkspace([working_copy])
        registry = Registry(CvsClient(fake_cvs.path), workspace, refresh_delay=60.0)
        await registry.initial_scan
        (repository,) = registry.repositories
        events: list[ModelChangeEvent] = []
        registry.on_did_change_repository(events.append)
        originals: list[Path] = []
        registry.on_did_change_original_resource(
            lambda event: originals.append(event.uri)
        )

        workspace.notify_change(working_copy / "foo.txt")
        workspace.notify_change(working_copy / "CVS" / "Entries")
        workspace.notify_change(working_copy.parent / "elsewhere.txt")

        assert events == [
            ModelChangeEvent(repository, canonical_path(working_copy / "foo.txt")),
            ModelChangeEvent(
                repository, canonical_path(working_copy / "CVS" / "Entries")
            ),
        ], "Expected only changes inside the repository."
        assert originals == [canonical_path(working_copy)], (
            "Expected the metadata change to name the repository root."
        )
        registry.dispose()

    @pytest.mark.asyncio
    async def test_folder_changes_open_and_close(
        self, fake_cvs: FakeCvs, working_copy: Path
    ) -> None:
        """Added folders are scanned; removed folders close their repositories."""
        workspace = LocalWorkspace()
        registry = Registry(CvsClient(fake_cvs.path), workspace, refresh_delay=60.0)
        await registry.initial_scan
        opened: list[Repository] = []
        closed: list[Repository] = []
        registry.on_did_open_repository(opened.append)
        registry.on_did_close_repository(closed.append)

        workspace.add_folder(working_copy)
        await wait_until(lambda: len(opened) == 1)
        workspace.remove_folder(working_copy)

        assert len(opened) == 1, "Expected the added folder to open once."
        assert closed == opened, "Expected the removed folder to close it."
        assert registry.repositories == (), "Expected the registry to be empty."
        registry.dispose()
