"""Transactional grade mutations and gradebook consistency checks.

This module provides :class:`GradebookAggregator`, the only writer of grade
records and gradebook entries. Every grade mutation runs one transaction
that reads the source definition, the prior grade and the student's running
totals, then writes the new grade, the adjusted totals, an audit row and a
``grade.mutated`` domain event. Either all of it commits or none of it does.

Usage
-----
>>> from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
>>> from gradeledger.gradebook import Actor, GradebookAggregator
>>>
>>> engine = create_async_engine("sqlite+aiosqlite:///gradeledger.db")
>>> session_factory = async_sessionmaker(engine, expire_on_commit=False)
>>> aggregator = GradebookAggregator(session_factory)
>>> mutation = await aggregator.set_grade(
...     "cs101", "assignment", "hw1", "student-a", 42, 50,
...     actor=Actor(uid="prof-1", role="instructor"),
... )
>>> mutation.after.grade_revision
1

"""

from __future__ import annotations

import dataclasses as dc
import math
import typing as typ

from sqlalchemy import select

from gradeledger.common.time import utcnow
from gradeledger.gradebook.config import AggregatorConfig
from gradeledger.gradebook.errors import GradeNotFoundError, GradeValidationError
from gradeledger.gradebook.observability import GradebookEventLogger
from gradeledger.gradebook.sanitize import sanitize_feedback
from gradeledger.gradebook.storage import (
    Course,
    GradebookEntry,
    GradeRecord,
    GradeSource,
    SourceType,
    Submission,
    grade_record_id,
)
from gradeledger.gradebook.transaction import run_in_transaction
from gradeledger.ledger.audit import AuditRecord, AuditSink, DatabaseAuditSink
from gradeledger.ledger.models import (
    AggregateKind,
    EventAggregate,
    EventType,
    build_idempotency_key,
    key_number,
)
from gradeledger.ledger.services import DomainEventInput, DomainEventWriter

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Float sums of re-ordered scores may differ in the last bits.
DRIFT_TOLERANCE = 1e-9
MAX_GRADEBOOK_PAGE = 200


@dc.dataclass(frozen=True, slots=True)
class Actor:
    """Caller identity, already authorised by the calling layer."""

    uid: str
    role: str
    email: str | None = None


@dc.dataclass(frozen=True, slots=True)
class GradeState:
    """Score and revision of a grade at one point in time."""

    score: float | None
    grade_revision: int

    def as_payload(self) -> dict[str, float | int | None]:
        """Return the ``{score, gradeRevision}`` event payload shape."""
        return {"score": self.score, "gradeRevision": self.grade_revision}


@dc.dataclass(frozen=True, slots=True)
class GradeRequest:
    """A validated grade mutation awaiting its transaction."""

    course_id: str
    source_type: str
    source_id: str
    student_id: str
    score: float
    points_possible: float
    feedback: str | None = None

    @property
    def grade_id(self) -> str:
        """Deterministic id of the grade record this request writes."""
        return grade_record_id(self.source_type, self.source_id, self.student_id)


@dc.dataclass(frozen=True, slots=True)
class GradeMutation:
    """Committed outcome of a grade mutation."""

    course_id: str
    grade_id: str
    source_type: str
    source_id: str
    student_id: str
    points_possible: float
    before: GradeState
    after: GradeState
    delta_score: float
    delta_possible: float
    event_id: str | None


@dc.dataclass(frozen=True, slots=True)
class RecomputeResult:
    """Comparison between summed grade records and the live gradebook entry."""

    course_id: str
    student_id: str
    total_score: float
    total_possible: float
    live_total_score: float
    live_total_possible: float
    grade_count: int
    repaired: bool
    event_id: str | None

    @property
    def delta_total_score(self) -> float:
        """Recomputed minus live total score."""
        return self.total_score - self.live_total_score

    @property
    def delta_total_possible(self) -> float:
        """Recomputed minus live total possible."""
        return self.total_possible - self.live_total_possible

    @property
    def drift_flagged(self) -> bool:
        """Whether the live entry disagrees with its grade records."""
        return (
            abs(self.delta_total_score) > DRIFT_TOLERANCE
            or abs(self.delta_total_possible) > DRIFT_TOLERANCE
        )


def _require_id(value: str, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise GradeValidationError.missing_identifier(field)
    return value.strip()


def _require_finite_non_negative(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    number = float(value)
    if not math.isfinite(number) or number < 0:
        return None
    return number


@dc.dataclass(frozen=True, slots=True)
class _GradeContext:
    course: Course
    source: GradeSource
    record: GradeRecord | None
    entry: GradebookEntry | None
    submission: Submission | None


class GradebookAggregator:
    """Keep grade records and per-student totals consistent.

    ``totalScore`` always equals the sum of the student's current scores and
    ``totalPossible`` the sum of ``pointsPossible`` over every source graded
    at least once. Both move by deltas computed from state read inside the
    same transaction, never from values supplied by the caller.
    """

    def __init__(  # noqa: PLR0913
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        config: AggregatorConfig | None = None,
        event_writer: DomainEventWriter | None = None,
        audit_sink: AuditSink | None = None,
        event_logger: GradebookEventLogger | None = None,
    ) -> None:
        """Configure the aggregator with its collaborators.

        Parameters
        ----------
        session_factory
            Async session factory for the backing store.
        config
            Retry and size limits; defaults to :class:`AggregatorConfig`.
        event_writer
            Ledger writer used inside each transaction.
        audit_sink
            Compliance trail written next to each event.
        event_logger
            Structured logger for lifecycle events.

        """
        self._session_factory = session_factory
        self._config = config or AggregatorConfig()
        self._events = event_writer or DomainEventWriter(session_factory)
        self._audit = audit_sink or DatabaseAuditSink()
        self._event_logger = event_logger or GradebookEventLogger()

    @property
    def config(self) -> AggregatorConfig:
        """Return the active configuration."""
        return self._config

    def prepare_request(  # noqa: PLR0913
        self,
        course_id: str,
        source_type: str,
        source_id: str,
        student_id: str,
        score: float,
        points_possible: float,
        feedback: str | None = None,
    ) -> GradeRequest:
        """Validate a grade mutation before any transaction starts.

        Raises
        ------
        GradeValidationError
            For blank identifiers, an unknown source type, a score that is
            not finite, negative or above ``points_possible``, or feedback
            over the configured length.

        """
        course_id = _require_id(course_id, "course_id")
        source_id = _require_id(source_id, "source_id")
        student_id = _require_id(student_id, "student_id")
        if source_type not in {member.value for member in SourceType}:
            raise GradeValidationError.missing_identifier("source_type")

        checked_possible = _require_finite_non_negative(points_possible)
        if checked_possible is None:
            raise GradeValidationError.invalid_points_possible()
        checked_score = _require_finite_non_negative(score)
        if checked_score is None:
            raise GradeValidationError.invalid_score()
        if checked_score > checked_possible:
            raise GradeValidationError.score_exceeds_possible(
                checked_score, checked_possible
            )

        clean_feedback = sanitize_feedback(feedback)
        if (
            clean_feedback is not None
            and len(clean_feedback) > self._config.max_feedback_chars
        ):
            raise GradeValidationError.feedback_too_long(
                self._config.max_feedback_chars
            )

        return GradeRequest(
            course_id=course_id,
            source_type=str(source_type),
            source_id=source_id,
            student_id=student_id,
            score=checked_score,
            points_possible=checked_possible,
            feedback=clean_feedback,
        )

    async def set_grade(  # noqa: PLR0913
        self,
        course_id: str,
        source_type: str,
        source_id: str,
        student_id: str,
        score: float,
        points_possible: float,
        feedback: str | None = None,
        *,
        actor: Actor,
        request_id: str | None = None,
    ) -> GradeMutation:
        """Grade one (source, student) pair and update the gradebook.

        Returns
        -------
        GradeMutation
            Before/after score and revision plus the applied deltas.

        Raises
        ------
        GradeValidationError
            When the input is rejected, before or inside the transaction.
        GradeNotFoundError
            When the course or source does not exist.
        GradeContentionError
            When conflicting writers exhausted the retry budget.

        """
        request = self.prepare_request(
            course_id,
            source_type,
            source_id,
            student_id,
            score,
            points_possible,
            feedback,
        )

        async def _work(session: AsyncSession) -> GradeMutation:
            return await self.apply_grade(
                session, request, actor=actor, request_id=request_id
            )

        mutation = await run_in_transaction(
            self._session_factory,
            _work,
            operation="set_grade",
            max_attempts=self._config.max_attempts,
            event_logger=self._event_logger,
        )
        self._event_logger.log_grade_mutated(
            course_id=mutation.course_id,
            grade_id=mutation.grade_id,
            mutation=mutation,
        )
        return mutation

    async def _load_context(
        self, session: AsyncSession, request: GradeRequest
    ) -> _GradeContext:
        """Perform the transaction's ordered reads."""
        course = await session.get(Course, request.course_id)
        if course is None:
            raise GradeNotFoundError("course", request.course_id)

        source = await session.get(
            GradeSource, (request.course_id, request.source_type, request.source_id)
        )
        if source is None:
            raise GradeNotFoundError(
                request.source_type, f"{request.course_id}/{request.source_id}"
            )

        record = await session.get(GradeRecord, (request.course_id, request.grade_id))
        entry = await session.get(
            GradebookEntry, (request.course_id, request.student_id)
        )
        submission = None
        if request.source_type == SourceType.ASSIGNMENT:
            submission = await session.get(
                Submission,
                (request.course_id, request.source_id, request.student_id),
            )
        return _GradeContext(
            course=course,
            source=source,
            record=record,
            entry=entry,
            submission=submission,
        )

    @staticmethod
    def _check_against_source(request: GradeRequest, source: GradeSource) -> float:
        defined = _require_finite_non_negative(source.points_possible)
        if defined is None:
            raise GradeValidationError.invalid_points_possible()
        if not math.isclose(request.points_possible, defined):
            raise GradeValidationError.points_possible_mismatch(
                request.points_possible, defined
            )
        if request.score > defined:
            raise GradeValidationError.score_exceeds_possible(request.score, defined)
        return defined

    async def apply_grade(
        self,
        session: AsyncSession,
        request: GradeRequest,
        *,
        actor: Actor,
        request_id: str | None = None,
    ) -> GradeMutation:
        """Run the grade mutation body inside the caller's transaction.

        Used directly by flows that grade as part of a larger transaction,
        such as submitting an assessed test attempt. The caller commits.
        """
        context = await self._load_context(session, request)
        points_possible = self._check_against_source(request, context.source)

        record = context.record
        prior_score = record.score if record is not None else None
        prior_revision = record.grade_revision if record is not None else 0
        next_revision = prior_revision + 1
        delta_score = request.score - (prior_score or 0.0)
        delta_possible = 0.0 if record is not None else points_possible
        source_version = (
            context.submission.assignment_version
            if context.submission is not None
            else context.source.version
        )
        now = utcnow()

        if context.submission is not None:
            context.submission.grade_score = request.score
            context.submission.grade_feedback = request.feedback
            context.submission.graded_at = now
            context.submission.graded_by = actor.uid
            context.submission.grade_revision = next_revision

        if record is None:
            session.add(
                GradeRecord(
                    course_id=request.course_id,
                    grade_id=request.grade_id,
                    student_id=request.student_id,
                    source_type=request.source_type,
                    source_id=request.source_id,
                    source_version=source_version,
                    score=request.score,
                    points_possible=points_possible,
                    feedback=request.feedback,
                    graded_by=actor.uid,
                    grade_revision=next_revision,
                    graded_at=now,
                )
            )
        else:
            record.score = request.score
            record.points_possible = points_possible
            record.source_version = source_version
            record.feedback = request.feedback
            record.graded_by = actor.uid
            record.grade_revision = next_revision
            record.graded_at = now

        if context.entry is None:
            session.add(
                GradebookEntry(
                    course_id=request.course_id,
                    student_id=request.student_id,
                    total_score=delta_score,
                    total_possible=delta_possible,
                    computed_at=now,
                )
            )
        else:
            context.entry.total_score += delta_score
            context.entry.total_possible += delta_possible
            context.entry.computed_at = now

        before = GradeState(score=prior_score, grade_revision=prior_revision)
        after = GradeState(score=request.score, grade_revision=next_revision)

        await self._audit.write(
            session,
            AuditRecord(
                action="grade.set",
                actor_uid=actor.uid,
                actor_role=actor.role,
                actor_email=actor.email,
                target_uid=request.student_id,
                request_id=request_id,
                metadata={
                    "courseId": request.course_id,
                    "gradeId": request.grade_id,
                    "pointsPossible": points_possible,
                    "before": before.as_payload(),
                    "after": after.as_payload(),
                },
            ),
        )
        event = await self._events.record(
            session,
            DomainEventInput(
                type=EventType.GRADE_MUTATED,
                course_id=request.course_id,
                actor_uid=actor.uid,
                actor_role=actor.role,
                aggregate=EventAggregate(
                    kind=AggregateKind.GRADE,
                    id=request.grade_id,
                    version=next_revision,
                ),
                payload={
                    "courseId": request.course_id,
                    "sourceType": request.source_type,
                    "sourceId": request.source_id,
                    "studentId": request.student_id,
                    "pointsPossible": points_possible,
                    "before": before.as_payload(),
                    "after": after.as_payload(),
                },
                idempotency_key=build_idempotency_key(
                    EventType.GRADE_MUTATED,
                    request.course_id,
                    request.source_type,
                    request.source_id,
                    request.student_id,
                    revision=next_revision,
                ),
                request_id=request_id,
                occurred_at=now,
            ),
        )

        return GradeMutation(
            course_id=request.course_id,
            grade_id=request.grade_id,
            source_type=request.source_type,
            source_id=request.source_id,
            student_id=request.student_id,
            points_possible=points_possible,
            before=before,
            after=after,
            delta_score=delta_score,
            delta_possible=delta_possible,
            event_id=event.event_id,
        )

    async def recompute_student(  # noqa: PLR0913
        self,
        course_id: str,
        student_id: str,
        *,
        actor: Actor,
        reason: str | None = None,
        repair: bool = False,
        request_id: str | None = None,
    ) -> RecomputeResult:
        """Sum a student's grade records and report drift from the live entry.

        The live entry is left untouched unless ``repair`` is set; either way
        a ``gradebook.student.recomputed`` event records both totals, the
        deltas and whether drift was flagged.

        Raises
        ------
        GradeValidationError
            When the student has more grade records than
            ``max_grades_scan``.
        GradeNotFoundError
            When the course does not exist.

        """
        course_id = _require_id(course_id, "course_id")
        student_id = _require_id(student_id, "student_id")
        clean_reason = sanitize_feedback(reason)

        async def _work(session: AsyncSession) -> RecomputeResult:
            return await self._recompute(
                session,
                course_id,
                student_id,
                actor=actor,
                reason=clean_reason,
                repair=repair,
                request_id=request_id,
            )

        result = await run_in_transaction(
            self._session_factory,
            _work,
            operation="recompute_student",
            max_attempts=self._config.max_attempts,
            event_logger=self._event_logger,
        )
        self._event_logger.log_recompute(result=result)
        return result

    async def _recompute(  # noqa: PLR0913
        self,
        session: AsyncSession,
        course_id: str,
        student_id: str,
        *,
        actor: Actor,
        reason: str | None,
        repair: bool,
        request_id: str | None,
    ) -> RecomputeResult:
        if await session.get(Course, course_id) is None:
            raise GradeNotFoundError("course", course_id)

        limit = self._config.max_grades_scan
        records = (
            await session.scalars(
                select(GradeRecord)
                .where(
                    GradeRecord.course_id == course_id,
                    GradeRecord.student_id == student_id,
                )
                .order_by(GradeRecord.grade_id)
                .limit(limit + 1)
            )
        ).all()
        if len(records) > limit:
            raise GradeValidationError.too_many_grades(limit)

        total_score = math.fsum(record.score for record in records)
        total_possible = math.fsum(record.points_possible for record in records)
        entry = await session.get(GradebookEntry, (course_id, student_id))
        live_score = entry.total_score if entry is not None else 0.0
        live_possible = entry.total_possible if entry is not None else 0.0

        measured = RecomputeResult(
            course_id=course_id,
            student_id=student_id,
            total_score=total_score,
            total_possible=total_possible,
            live_total_score=live_score,
            live_total_possible=live_possible,
            grade_count=len(records),
            repaired=False,
            event_id=None,
        )
        repaired = repair and measured.drift_flagged
        now = utcnow()
        if repaired:
            if entry is None:
                session.add(
                    GradebookEntry(
                        course_id=course_id,
                        student_id=student_id,
                        total_score=total_score,
                        total_possible=total_possible,
                        computed_at=now,
                    )
                )
            else:
                entry.total_score = total_score
                entry.total_possible = total_possible
                entry.computed_at = now

        payload = {
            "courseId": course_id,
            "studentId": student_id,
            "totalScore": total_score,
            "totalPossible": total_possible,
            "liveTotalScore": live_score,
            "liveTotalPossible": live_possible,
            "deltaTotalScore": measured.delta_total_score,
            "deltaTotalPossible": measured.delta_total_possible,
            "driftFlagged": measured.drift_flagged,
            "reason": reason,
            "repaired": repaired,
        }
        await self._audit.write(
            session,
            AuditRecord(
                action="gradebook.recompute",
                actor_uid=actor.uid,
                actor_role=actor.role,
                actor_email=actor.email,
                target_uid=student_id,
                request_id=request_id,
                metadata=payload,
            ),
        )
        event = await self._events.record(
            session,
            DomainEventInput(
                type=EventType.GRADEBOOK_STUDENT_RECOMPUTED,
                course_id=course_id,
                actor_uid=actor.uid,
                actor_role=actor.role,
                aggregate=EventAggregate(kind=AggregateKind.GRADEBOOK, id=student_id),
                payload=payload,
                idempotency_key=build_idempotency_key(
                    EventType.GRADEBOOK_STUDENT_RECOMPUTED,
                    course_id,
                    student_id,
                    key_number(total_score),
                    key_number(total_possible),
                    key_number(live_score),
                    key_number(live_possible),
                    "repaired" if repaired else "reported",
                ),
                request_id=request_id,
                occurred_at=now,
            ),
        )
        return dc.replace(measured, repaired=repaired, event_id=event.event_id)

    async def read_gradebook(
        self, course_id: str, *, limit: int = 100
    ) -> list[GradebookEntry]:
        """Return up to ``limit`` gradebook entries for a course.

        ``limit`` is clamped to 1..200.
        """
        course_id = _require_id(course_id, "course_id")
        page = max(1, min(MAX_GRADEBOOK_PAGE, limit))
        async with self._session_factory() as session:
            if await session.get(Course, course_id) is None:
                raise GradeNotFoundError("course", course_id)
            rows = await session.scalars(
                select(GradebookEntry)
                .where(GradebookEntry.course_id == course_id)
                .order_by(GradebookEntry.student_id)
                .limit(page)
            )
            return list(rows.all())
