"""Errors specific to repository state."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from pathlib import Path


class RepositoryStateError(Exception):
    """Raised when an operation is attempted on a repository that is not idle."""

    def __init__(self, root: Path, state: str) -> None:
        """Initialise with the repository root and its current state."""
        self.root = root
        self.state = state
        super().__init__(f"Repository not initialized: {root} is {state}")

    @classmethod
    def disposed(cls, root: Path) -> RepositoryStateError:
        """Return the error raised for a disposed repository."""
        return cls(root, "disposed")


__all__ = ["RepositoryStateError"]
