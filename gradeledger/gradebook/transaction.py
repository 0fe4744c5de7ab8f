"""Optimistic transaction runner with bounded retry.

Each attempt opens a fresh session, so every replay re-reads state instead of
reusing values from the conflicting attempt.
"""

from __future__ import annotations

import asyncio
import typing as typ

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from gradeledger.common.errors import GradeLedgerError
from gradeledger.gradebook.errors import GradeContentionError
from gradeledger.gradebook.observability import GradebookEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# StaleDataError: version token moved. IntegrityError: a racing first insert
# won the primary key. OperationalError: SQLite reported the database locked.
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    StaleDataError,
    IntegrityError,
    OperationalError,
)

T = typ.TypeVar("T")


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    work: cabc.Callable[[AsyncSession], cabc.Awaitable[T]],
    *,
    operation: str,
    max_attempts: int,
    event_logger: GradebookEventLogger | None = None,
    backoff_seconds: float = 0.01,
) -> T:
    """Run ``work`` in one atomic transaction, replaying it on conflict.

    Parameters
    ----------
    session_factory
        Factory for the sessions each attempt runs in.
    work
        Coroutine function performing ordered reads then ordered writes on
        the session it is given. It must not commit.
    operation
        Name used in logs and in :class:`GradeContentionError`.
    max_attempts
        Total attempts including the first.
    event_logger
        Structured logger for retry and failure events.
    backoff_seconds
        Linear backoff unit slept between attempts.

    Raises
    ------
    GradeContentionError
        When every attempt hit a conflict.

    """
    events = event_logger or GradebookEventLogger()
    attempts = max(max_attempts, 1)
    for attempt in range(1, attempts + 1):
        try:
            async with session_factory() as session, session.begin():
                return await work(session)
        except RETRYABLE_ERRORS as exc:
            if attempt == attempts:
                events.log_exhausted(operation=operation, attempts=attempt, error=exc)
                raise GradeContentionError(operation, attempt) from exc
            events.log_retry(operation=operation, attempt=attempt, error=exc)
            await asyncio.sleep(backoff_seconds * attempt)
        except GradeLedgerError as exc:
            events.log_failed(operation=operation, error=exc)
            raise
    raise GradeContentionError(operation, attempts)  # pragma: no cover
