"""Source-control model: repositories, their registry and resources."""

from __future__ import annotations

from cvswatch.scm.content import OriginalContentNotifier
from cvswatch.scm.errors import RepositoryStateError
from cvswatch.scm.operations import (
    OPERATION_POLICIES,
    Operation,
    OperationPolicy,
    Operations,
    OperationTracker,
)
from cvswatch.scm.registry import (
    ModelChangeEvent,
    OpenRepository,
    OriginalResourceChangeEvent,
    Registry,
)
from cvswatch.scm.repository import OperationResult, Repository, RepositoryState
from cvswatch.scm.resource import (
    STATUS_CODES,
    Resource,
    ResourceGroup,
    ResourceGroupType,
    Status,
)
from cvswatch.scm.retry import NO_RETRY, RetryPolicy, lock_contention_policy

__all__ = [
    "NO_RETRY",
    "OPERATION_POLICIES",
    "STATUS_CODES",
    "ModelChangeEvent",
    "OpenRepository",
    "Operation",
    "OperationPolicy",
    "OperationResult",
    "OperationTracker",
    "Operations",
    "OriginalContentNotifier",
    "OriginalResourceChangeEvent",
    "Registry",
    "Repository",
    "RepositoryState",
    "RepositoryStateError",
    "Resource",
    "ResourceGroup",
    "ResourceGroupType",
    "RetryPolicy",
    "Status",
    "lock_contention_policy",
]
