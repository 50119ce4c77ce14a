"""Resources reported by a repository and the groups that hold them."""

from __future__ import annotations

import dataclasses as dc
import enum
import typing as typ

from cvswatch.common.events import Emitter, Event
from cvswatch.logging import get_logger, log_debug

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path

    from cvswatch.cvs.status_parser import FileStatusEntry

logger = get_logger(__name__)


class ResourceGroupType(enum.StrEnum):
    """Groups a repository sorts its resources into."""

    WORKING_TREE = "WorkingTree"


class Status(enum.StrEnum):
    """Working-copy state of a single file."""

    MODIFIED = "Modified"
    DELETED = "Deleted"
    UNTRACKED = "Untracked"
    IGNORED = "Ignored"
    ADDED = "Added"
    UNKNOWN = "Unknown"


STATUS_CODES: typ.Final[cabc.Mapping[str, Status]] = {
    "M": Status.MODIFIED,
    "D": Status.DELETED,
    "R": Status.DELETED,
    "?": Status.UNTRACKED,
    "I": Status.IGNORED,
    "A": Status.ADDED,
}


def status_from_code(code: str) -> Status:
    """Map a one-letter status code to :class:`Status`.

    Codes outside :data:`STATUS_CODES` map to :attr:`Status.UNKNOWN`.

    Examples
    --------
    >>> status_from_code("R")
    <Status.DELETED: 'Deleted'>
    >>> status_from_code("C")
    <Status.UNKNOWN: 'Unknown'>

    """
    status = STATUS_CODES.get(code)
    if status is None:
        log_debug(logger, "Unrecognized status code %r", code)
        return Status.UNKNOWN
    return status


@dc.dataclass(frozen=True, slots=True)
class Resource:
    """One file in a repository together with its state."""

    group_type: ResourceGroupType
    uri: Path
    status: Status

    @classmethod
    def from_entry(cls, root: Path, entry: FileStatusEntry) -> Resource:
        """Build a working-tree resource from a parsed status entry."""
        return cls(
            group_type=ResourceGroupType.WORKING_TREE,
            uri=root / entry.path,
            status=status_from_code(entry.status_code),
        )


class ResourceGroup:
    """Named collection of resources whose replacement is observable."""

    def __init__(self, group_type: ResourceGroupType, label: str) -> None:
        """Create an empty group."""
        self.group_type = group_type
        self.label = label
        self._resource_states: tuple[Resource, ...] = ()
        self._on_did_change: Emitter[None] = Emitter()

    @property
    def resource_states(self) -> tuple[Resource, ...]:
        """Return the resources currently in the group."""
        return self._resource_states

    @resource_states.setter
    def resource_states(self, resources: cabc.Iterable[Resource]) -> None:
        self._resource_states = tuple(resources)
        self._on_did_change.fire(None)

    @property
    def on_did_change(self) -> Event[None]:
        """Event fired whenever the group's resources are replaced."""
        return self._on_did_change.event

    def dispose(self) -> None:
        """Drop the group's listeners."""
        self._on_did_change.dispose()


__all__ = [
    "STATUS_CODES",
    "Resource",
    "ResourceGroup",
    "ResourceGroupType",
    "Status",
    "status_from_code",
]
