"""Behavioural tests for refreshing working-copy status."""

from __future__ import annotations

import asyncio
import typing as typ

import pytest
from pytest_bdd import given, parsers, scenario, then, when

from cvswatch.commands import error_message
from cvswatch.config import EngineConfig
from cvswatch.runtime import activate
from tests.helpers.fake_cvs import make_working_copy, status_lines, write_fake_cvs

if typ.TYPE_CHECKING:
    from pathlib import Path

    from tests.helpers.fake_cvs import FakeCvs


def run_async[T](coro: typ.Coroutine[typ.Any, typ.Any, T]) -> T:
    """Run async coroutines in sync BDD step functions."""
    return asyncio.run(coro)


class StatusContext(typ.TypedDict, total=False):
    """Shared state used by BDD steps."""

    working_copy: Path
    cvs: FakeCvs
    status_limit: int
    statuses: list[str]
    truncated: bool
    errors: list[str]


@scenario(
    "../repository_status.feature",
    "Status output becomes working-tree resources",
)
def test_status_output_becomes_resources() -> None:
    """Behavioural test: status lines become resources."""


@scenario(
    "../repository_status.feature",
    "Large working copies are truncated at the status limit",
)
def test_status_truncated_at_limit() -> None:
    """Behavioural test: the status limit caps the resources."""


@scenario(
    "../repository_status.feature",
    "A failing status is reported with a hint",
)
def test_failing_status_reports_hint() -> None:
    """Behavioural test: failures surface as CVS hints."""


@pytest.fixture
def status_context() -> StatusContext:
    """Return fresh scenario state."""
    return {}


@given("a working copy in the workspace")
def working_copy_in_workspace(
    status_context: StatusContext, workspace_root: Path
) -> None:
    """Create a checked-out working copy."""
    status_context["working_copy"] = make_working_copy(workspace_root / "proj")


@given(parsers.parse("a cvs client reporting {count:d} modified files"))
def cvs_reporting_modified(
    status_context: StatusContext, bin_dir: Path, count: int
) -> None:
    """Write a client whose status lists ``count`` modified files."""
    status_context["cvs"] = write_fake_cvs(bin_dir, stdout=status_lines(count))


@given(parsers.parse('a cvs client failing with "{stderr}"'))
def cvs_failing(status_context: StatusContext, bin_dir: Path, stderr: str) -> None:
    """Write a client whose status exits with ``stderr``."""
    status_context["cvs"] = write_fake_cvs(
        bin_dir, stderr=f"{stderr}\n", exit_code=1
    )


@given(parsers.parse("a status limit of {limit:d}"))
def status_limit(status_context: StatusContext, limit: int) -> None:
    """Configure the engine's status limit."""
    status_context["status_limit"] = limit


@when("the engine refreshes the workspace")
def refresh_workspace(status_context: StatusContext) -> None:
    """Activate the engine over the working copy and refresh it."""
    config = EngineConfig(
        cvs_path=status_context["cvs"].path,
        status_limit=status_context.get("status_limit", 5000),
    )

    async def _refresh() -> None:
        engine = await activate(config, folders=[status_context["working_copy"]])
        assert engine is not None, "Expected the engine to start."
        try:
            outcomes = await engine.refresh_all()
            (repository,) = engine.registry.repositories
            status_context["statuses"] = [
                str(resource.status)
                for resource in repository.working_tree.resource_states
            ]
            status_context["truncated"] = repository.did_hit_limit
            status_context["errors"] = [
                error_message(error)
                for error in outcomes.values()
                if error is not None
            ]
        finally:
            engine.dispose()

    run_async(_refresh())


@then(parsers.parse('{count:d} resources are listed as "{status}"'))
def resources_listed(status_context: StatusContext, count: int, status: str) -> None:
    """Check the published resources."""
    assert status_context["statuses"] == [status] * count, (
        f"Expected {count} resources with status {status}"
    )


@then("the refresh is not truncated")
def not_truncated(status_context: StatusContext) -> None:
    """Check that no entries were dropped."""
    assert status_context["truncated"] is False, "Expected no truncation"


@then("the refresh is truncated")
def truncated(status_context: StatusContext) -> None:
    """Check that entries beyond the limit were dropped."""
    assert status_context["truncated"] is True, "Expected truncation"


@then(parsers.parse('the refresh fails with "{message}"'))
def refresh_fails(status_context: StatusContext, message: str) -> None:
    """Check the reported failure."""
    assert status_context["errors"] == [message], f"Expected error {message!r}"
