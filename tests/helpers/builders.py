"""Builders for seeding coursework and constructing ledger events."""

from __future__ import annotations

import datetime as dt
import typing as typ

import msgspec
from sqlalchemy import func, select

from gradeledger.gradebook import Actor, Course, GradebookEntry, GradeSource
from gradeledger.ledger import (
    AggregateKind,
    DomainEvent,
    DomainEventRecord,
    EventAggregate,
    make_event_id,
)

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

NOW = dt.datetime(2025, 3, 10, 12, 0, tzinfo=dt.UTC)
COURSE_ID = "course_cs101"
INSTRUCTOR = Actor(uid="u_instructor_1", role="instructor", email="prof@example.edu")
STUDENT_A = Actor(uid="u_student_a", role="student")
STUDENT_B = Actor(uid="u_student_b", role="student")


async def seed_course(
    session_factory: async_sessionmaker[AsyncSession],
    course_id: str = COURSE_ID,
    *,
    title: str = "CS101",
) -> None:
    """Insert a course row."""
    async with session_factory() as session, session.begin():
        session.add(Course(course_id=course_id, title=title))


async def seed_source(  # noqa: PLR0913
    session_factory: async_sessionmaker[AsyncSession],
    source_id: str,
    *,
    course_id: str = COURSE_ID,
    source_type: str = "assignment",
    points_possible: float = 100.0,
    **fields: object,
) -> None:
    """Insert an assignment or test definition."""
    async with session_factory() as session, session.begin():
        session.add(
            GradeSource(
                course_id=course_id,
                source_type=source_type,
                source_id=source_id,
                points_possible=points_possible,
                **fields,
            )
        )


async def load_entry(
    session_factory: async_sessionmaker[AsyncSession],
    student_id: str,
    course_id: str = COURSE_ID,
) -> GradebookEntry | None:
    """Return the student's gradebook entry, if any."""
    async with session_factory() as session:
        return await session.get(GradebookEntry, (course_id, student_id))


async def load_events(
    session_factory: async_sessionmaker[AsyncSession],
    event_type: str | None = None,
) -> list[DomainEvent]:
    """Return stored events, oldest first, optionally of one type."""
    stmt = select(DomainEventRecord).order_by(
        DomainEventRecord.occurred_at, DomainEventRecord.event_id
    )
    if event_type is not None:
        stmt = stmt.where(DomainEventRecord.event_type == event_type)
    async with session_factory() as session:
        rows = (await session.scalars(stmt)).all()
    return [row.to_event() for row in rows]


async def count_rows(
    session_factory: async_sessionmaker[AsyncSession], model: type[object]
) -> int:
    """Count rows of ``model``."""
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(model)) or 0


def make_event(  # noqa: PLR0913
    event_type: str,
    *,
    occurred_at: dt.datetime,
    course_id: str = COURSE_ID,
    actor_uid: str = "u_student_a",
    payload: dict[str, typ.Any] | None = None,
    aggregate: EventAggregate | None = None,
    with_id: bool = True,
) -> DomainEvent:
    """Build a ledger event whose key is derived from its content."""
    body = payload or {}
    key = ":".join(
        (
            event_type,
            course_id,
            actor_uid,
            occurred_at.isoformat(),
            msgspec.json.encode(body, order="sorted").decode("utf-8"),
        )
    )
    return DomainEvent(
        event_id=make_event_id(key) if with_id else None,
        type=event_type,
        course_id=course_id,
        actor_uid=actor_uid,
        actor_role="student",
        aggregate=aggregate
        or EventAggregate(kind=AggregateKind.COURSE, id=course_id),
        payload=body,
        idempotency_key=key,
        occurred_at=occurred_at,
    )
