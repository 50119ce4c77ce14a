"""Retry policies for repository operations.

A policy decides how often an operation body is re-attempted and how long to
wait in between. Repositories default to :data:`NO_RETRY`. Working copies
shared with other clients can opt into :func:`lock_contention_policy`, which
backs off while another process holds the repository lock.
"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

from cvswatch.common.concurrency import sleep_ms
from cvswatch.logging import get_logger, log_info
from cvswatch.process import CvsError, CvsErrorCode

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)

LOCK_RETRY_ATTEMPTS = 10
LOCK_RETRY_BASE_MS = 50


def _never(_: BaseException, /) -> bool:
    return False


def _quadratic_backoff(attempt: int) -> float:
    return float(attempt * attempt * LOCK_RETRY_BASE_MS)


def is_lock_contention(exc: BaseException) -> bool:
    """Return whether ``exc`` reports that the repository is locked."""
    return (
        isinstance(exc, CvsError)
        and exc.cvs_error_code == CvsErrorCode.REPOSITORY_IS_LOCKED
    )


@dc.dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How many times to re-attempt an operation and how long to wait.

    Attributes
    ----------
    max_retries
        Retries allowed after the first attempt. Zero disables retrying.
    backoff_ms
        Delay in milliseconds before retry number ``attempt`` (1-based).
    is_retryable
        Predicate selecting the failures worth retrying.

    """

    max_retries: int = 0
    backoff_ms: cabc.Callable[[int], float] = _quadratic_backoff
    is_retryable: cabc.Callable[[BaseException], bool] = _never

    async def run[T](self, body: cabc.Callable[[], cabc.Awaitable[T]]) -> T:
        """Await ``body``, re-attempting retryable failures.

        The last failure propagates once the retry budget is exhausted or a
        failure is not retryable.
        """
        attempt = 0
        while True:
            try:
                return await body()
            except Exception as exc:
                attempt += 1
                if attempt > self.max_retries or not self.is_retryable(exc):
                    raise
                delay = self.backoff_ms(attempt)
                log_info(
                    logger,
                    "Retrying after %s (attempt %d of %d, waiting %.0f ms)",
                    type(exc).__name__,
                    attempt,
                    self.max_retries,
                    delay,
                )
                await sleep_ms(delay)


NO_RETRY: typ.Final = RetryPolicy()


def lock_contention_policy(
    max_retries: int = LOCK_RETRY_ATTEMPTS,
) -> RetryPolicy:
    """Return a policy that waits out another client's repository lock."""
    return RetryPolicy(
        max_retries=max_retries,
        backoff_ms=_quadratic_backoff,
        is_retryable=is_lock_contention,
    )


__all__ = [
    "LOCK_RETRY_ATTEMPTS",
    "LOCK_RETRY_BASE_MS",
    "NO_RETRY",
    "RetryPolicy",
    "is_lock_contention",
    "lock_contention_policy",
]
