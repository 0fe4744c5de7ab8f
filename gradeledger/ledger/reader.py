"""Read-only access to ledger windows for out-of-band analysis."""

from __future__ import annotations

import typing as typ

from sqlalchemy import select

from gradeledger.ledger.storage import DomainEventRecord

if typ.TYPE_CHECKING:
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from gradeledger.ledger.models import DomainEvent

DEFAULT_SNAPSHOT_LIMIT = 250


class LedgerSnapshotReader:
    """Fetch immutable event snapshots without touching any other table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Store the session factory used for reads."""
        self._session_factory = session_factory

    async def fetch(
        self,
        *,
        course_id: str | None = None,
        since: dt.datetime | None = None,
        limit: int = DEFAULT_SNAPSHOT_LIMIT,
    ) -> list[DomainEvent]:
        """Return up to ``limit`` of the most recent events, oldest first.

        Parameters
        ----------
        course_id
            Restrict the window to one course.
        since
            Only include events that occurred at or after this instant.
        limit
            Maximum number of events to return.

        """
        stmt = select(DomainEventRecord)
        if course_id is not None:
            stmt = stmt.where(DomainEventRecord.course_id == course_id)
        if since is not None:
            stmt = stmt.where(DomainEventRecord.occurred_at >= since)
        stmt = stmt.order_by(
            DomainEventRecord.occurred_at.desc(), DomainEventRecord.event_id.desc()
        ).limit(max(limit, 0))

        async with self._session_factory() as session:
            rows = (await session.scalars(stmt)).all()
        return [row.to_event() for row in reversed(rows)]
