"""femtologging helpers used across gradeledger.

Messages are interpolated eagerly with percent-style templates and handed to
femtologging as finished strings, so every module logs the same way.

Processes configure the root handler once at start-up, either explicitly
with :func:`configure_logging` or from ``GRADELEDGER_LOG_LEVEL`` with
:func:`configure_logging_from_env`.

Example:
>>> from gradeledger.logging import get_logger, log_info
>>> logger = get_logger(__name__)
>>> log_info(logger, "Recomputed %d gradebook entries", 3)

"""

from __future__ import annotations

import os
import typing as typ

from femtologging import basicConfig, get_logger

LOG_LEVEL_ENV_VAR = "GRADELEDGER_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"

SUPPORTED_LEVELS = frozenset(
    {"TRACE", "DEBUG", "INFO", "WARN", "WARNING", "ERROR", "CRITICAL"}
)


class _SupportsLog(typ.Protocol):
    """Structural type for femtologging loggers."""

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
    """Map a raw level name onto a supported level.

    Parameters
    ----------
    level : str | None
        Level name as supplied by the operator, e.g. from
        ``GRADELEDGER_LOG_LEVEL``.

    Returns
    -------
    tuple[str, bool]
        The level to use and whether the input had to be replaced.

    """
    candidate = (level or "").strip().upper()
    if candidate in SUPPORTED_LEVELS:
        return (candidate, False)
    return (DEFAULT_LOG_LEVEL, True)


def configure_logging(level: str, *, force: bool = False) -> tuple[str, bool]:
    """Install the femtologging root handler at ``level``.

    Returns the normalised level and the invalid-input flag from
    :func:`normalize_log_level` so callers can warn about bad settings.
    """
    normalized, invalid = normalize_log_level(level)
    basicConfig(level=normalized, force=force)
    return (normalized, invalid)


def configure_logging_from_env(
    logger: _SupportsLog | None = None,
    *,
    env: typ.Mapping[str, str] | None = None,
) -> str:
    """Configure logging from ``GRADELEDGER_LOG_LEVEL`` and return the level.

    An unrecognised value falls back to INFO and is reported through
    ``logger`` once the handler is installed.
    """
    source = os.environ if env is None else env
    raw = source.get(LOG_LEVEL_ENV_VAR, DEFAULT_LOG_LEVEL)
    normalized, invalid = configure_logging(raw)
    if invalid:
        log_warning(
            logger or get_logger(__name__),
            "Invalid %s %r, falling back to %s",
            LOG_LEVEL_ENV_VAR,
            raw,
            normalized,
        )
    return normalized


def format_log_message(template: str, *args: object) -> str:
    """Interpolate ``args`` into ``template`` with ``%`` formatting."""
    return template % args if args else template


def _emit(
    logger: _SupportsLog,
    level: str,
    template: str,
    args: tuple[object, ...],
    exc_info: object | None,
) -> None:
    logger.log(
        level,
        format_log_message(template, *args),
        exc_info=exc_info,
        stack_info=False,
    )


def log_debug(logger: _SupportsLog, template: str, *args: object) -> None:
    """Log a DEBUG message."""
    _emit(logger, "DEBUG", template, args, None)


def log_info(logger: _SupportsLog, template: str, *args: object) -> None:
    """Log an INFO message."""
    _emit(logger, "INFO", template, args, None)


def log_warning(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log a WARNING message, optionally attaching an exception."""
    _emit(logger, "WARNING", template, args, exc_info)


def log_error(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log an ERROR message, optionally attaching an exception."""
    _emit(logger, "ERROR", template, args, exc_info)


__all__ = [
    "LOG_LEVEL_ENV_VAR",
    "configure_logging",
    "configure_logging_from_env",
    "format_log_message",
    "get_logger",
    "log_debug",
    "log_error",
    "log_info",
    "log_warning",
    "normalize_log_level",
]
