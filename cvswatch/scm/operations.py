"""Operation tags and the per-repository in-flight tracker.

Every repository command runs under an :class:`Operation` tag. The tracker
counts how many invocations of each tag are in flight so that callers can ask
whether the repository is idle and whether progress should be shown. How a
tag is classified lives in :data:`OPERATION_POLICIES`, not in the tracker.
"""

from __future__ import annotations

import dataclasses as dc
import enum
import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc


class Operation(enum.StrEnum):
    """Named repository operations."""

    STATUS = "Status"


@dc.dataclass(frozen=True, slots=True)
class OperationPolicy:
    """Classification of one operation tag.

    Attributes
    ----------
    read_only
        Whether the operation leaves the working copy untouched. Operations
        that are not read-only trigger a model refresh when they finish and
        keep the repository from counting as idle.
    show_progress
        Whether a progress indicator should be shown while it runs.

    """

    read_only: bool
    show_progress: bool


# STATUS is treated as mutating so that every run refreshes the model.
OPERATION_POLICIES: typ.Final[cabc.Mapping[Operation, OperationPolicy]] = {
    Operation.STATUS: OperationPolicy(read_only=False, show_progress=True),
}


def policy_for(operation: Operation) -> OperationPolicy:
    """Return the policy for ``operation``.

    Raises
    ------
    KeyError
        If ``operation`` has no entry in :data:`OPERATION_POLICIES`.

    """
    return OPERATION_POLICIES[operation]


def is_read_only(operation: Operation) -> bool:
    """Return whether ``operation`` leaves the working copy untouched."""
    return policy_for(operation).read_only


class Operations(typ.Protocol):
    """Read-only view of the operations running against a repository."""

    def is_running(self, operation: Operation) -> bool: ...

    def is_idle(self) -> bool: ...

    def should_show_progress(self) -> bool: ...


class OperationTracker:
    """Count in-flight operations per tag.

    Counts never go negative: ending an operation that is not running is a
    no-op, and a tag disappears from the map when its count reaches zero.

    Examples
    --------
    >>> tracker = OperationTracker()
    >>> tracker.start(Operation.STATUS)
    >>> tracker.is_running(Operation.STATUS)
    True
    >>> tracker.end(Operation.STATUS)
    >>> tracker.is_running(Operation.STATUS)
    False

    """

    def __init__(self) -> None:
        """Create a tracker with nothing running."""
        self._counts: dict[Operation, int] = {}

    def start(self, operation: Operation) -> None:
        """Record one more running invocation of ``operation``."""
        self._counts[operation] = self._counts.get(operation, 0) + 1

    def end(self, operation: Operation) -> None:
        """Record that one invocation of ``operation`` finished."""
        count = self._counts.get(operation, 0) - 1
        if count <= 0:
            self._counts.pop(operation, None)
        else:
            self._counts[operation] = count

    def count(self, operation: Operation) -> int:
        """Return the number of running invocations of ``operation``."""
        return self._counts.get(operation, 0)

    def is_running(self, operation: Operation) -> bool:
        """Return whether at least one ``operation`` is in flight."""
        return self._counts.get(operation, 0) > 0

    def is_idle(self) -> bool:
        """Return whether every running operation is read-only."""
        return all(policy_for(operation).read_only for operation in self._counts)

    def should_show_progress(self) -> bool:
        """Return whether any running operation wants a progress indicator."""
        return any(policy_for(operation).show_progress for operation in self._counts)


__all__ = [
    "OPERATION_POLICIES",
    "Operation",
    "OperationPolicy",
    "OperationTracker",
    "Operations",
    "is_read_only",
    "policy_for",
]
