"""Test attempt lifecycle: start, submit and autograde.

Each transition runs in one optimistic transaction together with its
``test.attempt.*`` domain event. Submitting an assessed test also grades it
through :class:`~gradeledger.gradebook.GradebookAggregator` inside the same
transaction, so the attempt, the grade record, the gradebook totals and both
events commit together.
"""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
import typing as typ

from sqlalchemy import func, select

from gradeledger.common.time import utcnow
from gradeledger.coursework.errors import AttemptStateError
from gradeledger.gradebook import (
    AttemptStatus,
    GradebookAggregator,
    GradeNotFoundError,
    GradeSource,
    SourceType,
    TestAttempt,
    run_in_transaction,
)
from gradeledger.ledger import (
    AggregateKind,
    AuditRecord,
    DatabaseAuditSink,
    DomainEventInput,
    DomainEventWriter,
    EventAggregate,
    EventType,
    build_idempotency_key,
)
from gradeledger.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from gradeledger.gradebook import Actor, GradeMutation
    from gradeledger.ledger import AuditSink, DomainEvent

logger = get_logger(__name__)

UNTIMED_ATTEMPT_WINDOW = dt.timedelta(days=7)


def attempt_identifier(user_id: str, attempt_no: int) -> str:
    """Return the deterministic attempt id ``{userId}__{attemptNo}``."""
    return f"{user_id}__{attempt_no}"


@dc.dataclass(frozen=True, slots=True)
class AttemptStarted:
    """Outcome of :meth:`TestAttemptLedger.start_attempt`."""

    course_id: str
    test_id: str
    attempt_id: str
    attempt_no: int
    test_version: int
    expires_at: dt.datetime
    event: DomainEvent


@dc.dataclass(frozen=True, slots=True)
class AttemptSubmitted:
    """Outcome of :meth:`TestAttemptLedger.submit_attempt`.

    ``grade`` is ``None`` for unassessed (practice) tests.
    """

    course_id: str
    test_id: str
    attempt_id: str
    score: float
    event: DomainEvent
    grade: GradeMutation | None


class TestAttemptLedger:
    """Start and submit timed test attempts."""

    __test__ = False

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        aggregator: GradebookAggregator | None = None,
        event_writer: DomainEventWriter | None = None,
        audit_sink: AuditSink | None = None,
    ) -> None:
        """Wire the ledger to its store and the grade aggregator."""
        self._session_factory = session_factory
        self._events = event_writer or DomainEventWriter(session_factory)
        self._audit = audit_sink or DatabaseAuditSink()
        self._aggregator = aggregator or GradebookAggregator(
            session_factory, event_writer=self._events, audit_sink=self._audit
        )

    async def _require_test(
        self, session: AsyncSession, course_id: str, test_id: str
    ) -> GradeSource:
        source = await session.get(
            GradeSource, (course_id, SourceType.TEST.value, test_id)
        )
        if source is None:
            raise GradeNotFoundError(SourceType.TEST, f"{course_id}/{test_id}")
        return source

    async def start_attempt(
        self,
        course_id: str,
        test_id: str,
        *,
        actor: Actor,
        now: dt.datetime | None = None,
        request_id: str | None = None,
    ) -> AttemptStarted:
        """Open the actor's next attempt at a test.

        Raises
        ------
        GradeNotFoundError
            When the test does not exist.
        AttemptStateError
            When every allowed attempt has been used.

        """
        started_at = now or utcnow()

        async def _work(session: AsyncSession) -> AttemptStarted:
            source = await self._require_test(session, course_id, test_id)
            used = await session.scalar(
                select(func.count())
                .select_from(TestAttempt)
                .where(
                    TestAttempt.course_id == course_id,
                    TestAttempt.test_id == test_id,
                    TestAttempt.user_id == actor.uid,
                )
            )
            used = used or 0
            if used >= source.attempts_allowed:
                raise AttemptStateError.attempts_exhausted(
                    test_id, source.attempts_allowed
                )

            attempt_no = used + 1
            attempt_id = attempt_identifier(actor.uid, attempt_no)
            window = (
                dt.timedelta(minutes=source.duration_minutes)
                if source.duration_minutes
                else UNTIMED_ATTEMPT_WINDOW
            )
            expires_at = started_at + window
            session.add(
                TestAttempt(
                    course_id=course_id,
                    test_id=test_id,
                    attempt_id=attempt_id,
                    user_id=actor.uid,
                    attempt_no=attempt_no,
                    status=AttemptStatus.STARTED.value,
                    started_at=started_at,
                    expires_at=expires_at,
                    test_version=source.version,
                )
            )
            payload = {
                "courseId": course_id,
                "testId": test_id,
                "attemptId": attempt_id,
                "attemptNo": attempt_no,
                "testVersion": source.version,
                "durationMinutes": source.duration_minutes,
            }
            await self._audit.write(
                session,
                AuditRecord(
                    action="test.attempt.start",
                    actor_uid=actor.uid,
                    actor_role=actor.role,
                    actor_email=actor.email,
                    request_id=request_id,
                    metadata={**payload, "expiresAt": expires_at},
                ),
            )
            event = await self._events.record(
                session,
                DomainEventInput(
                    type=EventType.TEST_ATTEMPT_STARTED,
                    course_id=course_id,
                    actor_uid=actor.uid,
                    actor_role=actor.role,
                    aggregate=EventAggregate(
                        kind=AggregateKind.ATTEMPT,
                        id=attempt_id,
                        version=source.version,
                    ),
                    payload=payload,
                    idempotency_key=build_idempotency_key(
                        EventType.TEST_ATTEMPT_STARTED,
                        course_id,
                        test_id,
                        attempt_id,
                        version=source.version,
                    ),
                    request_id=request_id,
                    occurred_at=started_at,
                ),
            )
            return AttemptStarted(
                course_id=course_id,
                test_id=test_id,
                attempt_id=attempt_id,
                attempt_no=attempt_no,
                test_version=source.version,
                expires_at=expires_at,
                event=event,
            )

        started = await run_in_transaction(
            self._session_factory,
            _work,
            operation="start_attempt",
            max_attempts=self._aggregator.config.max_attempts,
        )
        log_info(
            logger,
            "Started attempt %s on test %s/%s",
            started.attempt_id,
            course_id,
            test_id,
        )
        return started

    async def submit_attempt(  # noqa: PLR0913
        self,
        course_id: str,
        test_id: str,
        attempt_id: str,
        score: float,
        *,
        actor: Actor,
        now: dt.datetime | None = None,
        request_id: str | None = None,
    ) -> AttemptSubmitted:
        """Close a started attempt with its score.

        Assessed tests are graded through the aggregator in the same
        transaction; a failed grade leaves the attempt started.

        Raises
        ------
        GradeNotFoundError
            When the test or attempt does not exist.
        AttemptStateError
            When the attempt belongs to someone else, was already submitted
            or has expired.
        GradeValidationError
            When the score is invalid for the test.

        """
        submitted_at = now or utcnow()

        async def _work(session: AsyncSession) -> AttemptSubmitted:
            source = await self._require_test(session, course_id, test_id)
            attempt = await session.get(TestAttempt, (course_id, test_id, attempt_id))
            if attempt is None:
                raise GradeNotFoundError("attempt", attempt_id)
            if attempt.user_id != actor.uid:
                raise AttemptStateError.not_owner(attempt_id)
            if attempt.status != AttemptStatus.STARTED:
                raise AttemptStateError.not_started(attempt_id, attempt.status)
            if submitted_at > attempt.expires_at:
                raise AttemptStateError.expired(attempt_id)

            request = self._aggregator.prepare_request(
                course_id,
                SourceType.TEST,
                test_id,
                actor.uid,
                score,
                source.points_possible,
            )
            attempt.status = AttemptStatus.GRADED.value
            attempt.submitted_at = submitted_at
            attempt.score = request.score

            payload = {
                "courseId": course_id,
                "testId": test_id,
                "attemptId": attempt_id,
                "attemptNo": attempt.attempt_no,
                "testVersion": attempt.test_version,
                "score": request.score,
                "pointsPossible": source.points_possible,
            }
            await self._audit.write(
                session,
                AuditRecord(
                    action="test.attempt.submit",
                    actor_uid=actor.uid,
                    actor_role=actor.role,
                    actor_email=actor.email,
                    request_id=request_id,
                    metadata=payload,
                ),
            )
            event = await self._events.record(
                session,
                DomainEventInput(
                    type=EventType.TEST_ATTEMPT_SUBMITTED,
                    course_id=course_id,
                    actor_uid=actor.uid,
                    actor_role=actor.role,
                    aggregate=EventAggregate(
                        kind=AggregateKind.ATTEMPT,
                        id=attempt_id,
                        version=attempt.test_version,
                    ),
                    payload=payload,
                    idempotency_key=build_idempotency_key(
                        EventType.TEST_ATTEMPT_SUBMITTED,
                        course_id,
                        test_id,
                        attempt_id,
                        version=attempt.test_version,
                    ),
                    request_id=request_id,
                    occurred_at=submitted_at,
                ),
            )
            grade = None
            if source.is_assessed:
                grade = await self._aggregator.apply_grade(
                    session, request, actor=actor, request_id=request_id
                )
            return AttemptSubmitted(
                course_id=course_id,
                test_id=test_id,
                attempt_id=attempt_id,
                score=request.score,
                event=event,
                grade=grade,
            )

        submitted = await run_in_transaction(
            self._session_factory,
            _work,
            operation="submit_attempt",
            max_attempts=self._aggregator.config.max_attempts,
        )
        if submitted.grade is not None:
            log_info(
                logger,
                "Graded attempt %s at revision %d",
                attempt_id,
                submitted.grade.after.grade_revision,
            )
        return submitted
