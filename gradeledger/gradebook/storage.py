"""Course, grade record and gradebook tables.

Grade records and gradebook entries carry optimistic-concurrency tokens
through SQLAlchemy's ``version_id_col``: an UPDATE only matches the row
version that was read, so a concurrent writer surfaces as
``StaleDataError`` instead of a lost update.
"""

from __future__ import annotations

import datetime as dt  # noqa: TC003
import enum
import typing as typ

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Float,
    ForeignKeyConstraint,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from gradeledger.common.time import utcnow
from gradeledger.ledger.storage import Base, UTCDateTime

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


class SourceType(enum.StrEnum):
    """Kinds of gradable work."""

    ASSIGNMENT = "assignment"
    TEST = "test"


class AttemptStatus(enum.StrEnum):
    """Lifecycle of a test attempt."""

    STARTED = "started"
    GRADED = "graded"


def grade_record_id(source_type: str, source_id: str, student_id: str) -> str:
    """Return the deterministic grade id ``{sourceType}_{sourceId}_{studentId}``."""
    return f"{source_type}_{source_id}_{student_id}"


class Course(Base):
    """Course that owns gradable sources and gradebook entries."""

    __tablename__ = "courses"

    course_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), default="")
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)


class GradeSource(Base):
    """Definition of an assignment or test that can be graded."""

    __tablename__ = "grade_sources"
    __table_args__ = (
        ForeignKeyConstraint(["course_id"], ["courses.course_id"]),
        CheckConstraint("points_possible >= 0", name="ck_grade_sources_points"),
        CheckConstraint("attempts_allowed >= 1", name="ck_grade_sources_attempts"),
    )

    course_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    source_type: Mapped[str] = mapped_column(String(16), primary_key=True)
    source_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), default="")
    points_possible: Mapped[float] = mapped_column(Float)
    version: Mapped[int] = mapped_column(Integer, default=1)
    due_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime(), default=None)
    allow_late: Mapped[bool] = mapped_column(Boolean, default=True)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, default=None)
    attempts_allowed: Mapped[int] = mapped_column(Integer, default=1)
    is_assessed: Mapped[bool] = mapped_column(Boolean, default=True)


class Submission(Base):
    """A student's submission for an assignment, including its grade."""

    __tablename__ = "submissions"
    __table_args__ = (ForeignKeyConstraint(["course_id"], ["courses.course_id"]),)

    course_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    assignment_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    submitted_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    late: Mapped[bool] = mapped_column(Boolean, default=False)
    assignment_version: Mapped[int] = mapped_column(Integer, default=1)
    grade_score: Mapped[float | None] = mapped_column(Float, default=None)
    grade_feedback: Mapped[str | None] = mapped_column(Text(), default=None)
    graded_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime(), default=None)
    graded_by: Mapped[str | None] = mapped_column(String(128), default=None)
    grade_revision: Mapped[int] = mapped_column(Integer, default=0)


class TestAttempt(Base):
    """One timed attempt at a test by one user."""

    __tablename__ = "test_attempts"
    __table_args__ = (
        ForeignKeyConstraint(["course_id"], ["courses.course_id"]),
        Index("ix_test_attempts_user", "course_id", "test_id", "user_id"),
    )
    __test__ = False

    course_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    test_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    attempt_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128))
    attempt_no: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(16), default=AttemptStatus.STARTED.value)
    started_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    expires_at: Mapped[dt.datetime] = mapped_column(UTCDateTime())
    submitted_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    score: Mapped[float | None] = mapped_column(Float, default=None)
    test_version: Mapped[int] = mapped_column(Integer, default=1)


class GradeRecord(Base):
    """Canonical grade for one (source, student) pair within a course.

    ``grade_revision`` starts at 1 and increases by exactly one on every
    re-grade; it is also the row's optimistic-concurrency token.
    """

    __tablename__ = "grade_records"
    __table_args__ = (
        ForeignKeyConstraint(["course_id"], ["courses.course_id"]),
        Index("ix_grade_records_student", "course_id", "student_id"),
        CheckConstraint("score >= 0", name="ck_grade_records_score"),
    )

    course_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    grade_id: Mapped[str] = mapped_column(String(512), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(128))
    source_type: Mapped[str] = mapped_column(String(16))
    source_id: Mapped[str] = mapped_column(String(128))
    source_version: Mapped[int] = mapped_column(Integer, default=1)
    score: Mapped[float] = mapped_column(Float)
    points_possible: Mapped[float] = mapped_column(Float)
    feedback: Mapped[str | None] = mapped_column(Text(), default=None)
    graded_by: Mapped[str] = mapped_column(String(128))
    grade_revision: Mapped[int] = mapped_column(Integer, nullable=False)
    graded_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)

    __mapper_args__ = {
        "version_id_col": grade_revision,
        "version_id_generator": False,
    }


class GradebookEntry(Base):
    """Running per-student totals derived from grade records."""

    __tablename__ = "gradebook_entries"
    __table_args__ = (ForeignKeyConstraint(["course_id"], ["courses.course_id"]),)

    course_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    total_score: Mapped[float] = mapped_column(Float, default=0.0)
    total_possible: Mapped[float] = mapped_column(Float, default=0.0)
    computed_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


async def init_gradebook_storage(engine: AsyncEngine) -> None:
    """Create gradebook tables registered with the shared Base if absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
