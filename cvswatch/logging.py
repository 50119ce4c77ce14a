"""femtologging glue shared by every cvswatch module.

Modules create ``logger = get_logger(__name__)`` and log through the
``log_*`` helpers. Messages are %-formatted here, before they reach
femtologging, which takes a single preformatted string. The helpers accept
anything with a femtologging-style ``log`` method, so tests can pass a
recording double.

Example:
>>> from cvswatch.logging import get_logger, log_info
>>> logger = get_logger("cvswatch.scm.registry")
>>> log_info(logger, "Open repository: %s", "/ws/proj")

"""

from __future__ import annotations

import enum
import shlex
import typing as typ

from femtologging import basicConfig, get_logger

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import os

DEFAULT_LEVEL = "INFO"


class LogLevel(enum.StrEnum):
    """Level names femtologging accepts."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class SupportsLog(typ.Protocol):
    """The part of a femtologging logger the helpers call."""

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str | None: ...


def normalize_log_level(level: str | None) -> tuple[str, bool]:
    """Return ``(level, invalid)`` for a user-supplied level name.

    Empty and unknown names fall back to ``INFO`` with ``invalid`` set.

    Examples
    --------
    >>> normalize_log_level(" debug ")
    ('DEBUG', False)
    >>> normalize_log_level("loud")
    ('INFO', True)

    """
    candidate = (level or "").strip().upper()
    if candidate in LogLevel.__members__:
        return (LogLevel[candidate].value, False)
    return (DEFAULT_LEVEL, True)


def configure_logging(level: str, *, force: bool = False) -> tuple[str, bool]:
    """Install femtologging's root handler at ``level``.

    Returns the result of :func:`normalize_log_level` so callers can warn
    about a level that was replaced by the default.
    """
    normalized, invalid = normalize_log_level(level)
    basicConfig(level=normalized, force=force)
    return (normalized, invalid)


def format_log_message(template: str, *args: object) -> str:
    """Apply ``args`` to ``template``; without args it is returned verbatim."""
    return template % args if args else template


def _emit(
    logger: SupportsLog,
    level: str,
    template: str,
    args: tuple[object, ...],
    exc_info: object | None = None,
) -> None:
    logger.log(
        level,
        format_log_message(template, *args),
        exc_info=exc_info,
        stack_info=False,
    )


def log_debug(logger: SupportsLog, template: str, *args: object) -> None:
    """Log at DEBUG."""
    _emit(logger, LogLevel.DEBUG.value, template, args)


def log_info(
    logger: SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log at INFO."""
    _emit(logger, LogLevel.INFO.value, template, args, exc_info)


def log_warning(
    logger: SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log at WARNING, optionally attaching ``exc_info``."""
    _emit(logger, LogLevel.WARNING.value, template, args, exc_info)


def log_error(
    logger: SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log at ERROR, optionally attaching ``exc_info``."""
    _emit(logger, LogLevel.ERROR.value, template, args, exc_info)


def log_exception(logger: SupportsLog, message: str, exc: BaseException) -> None:
    """Log ``message`` at ERROR with ``exc`` as the attached exception.

    ``message`` is used as is; it is not a template.
    """
    _emit(logger, LogLevel.ERROR.value, message, (), exc)


def log_command(
    logger: SupportsLog,
    args: cabc.Sequence[str],
    cwd: str | os.PathLike[str],
) -> None:
    """Log the shell-quoted client command line about to run in ``cwd``."""
    log_debug(logger, "> cvs %s (cwd=%s)", shlex.join(args), cwd)


__all__ = [
    "DEFAULT_LEVEL",
    "LogLevel",
    "SupportsLog",
    "configure_logging",
    "format_log_message",
    "get_logger",
    "log_command",
    "log_debug",
    "log_error",
    "log_exception",
    "log_info",
    "log_warning",
    "normalize_log_level",
]
