"""Assignment submission flow."""

from __future__ import annotations

import dataclasses as dc
import typing as typ

from gradeledger.common.time import utcnow
from gradeledger.coursework.errors import LateSubmissionRejectedError
from gradeledger.gradebook import (
    AggregatorConfig,
    GradeNotFoundError,
    GradeSource,
    SourceType,
    Submission,
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
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from gradeledger.gradebook import Actor
    from gradeledger.ledger import AuditSink, DomainEvent

logger = get_logger(__name__)

SECONDS_PER_HOUR = 3600


@dc.dataclass(frozen=True, slots=True)
class SubmissionReceipt:
    """Outcome of :meth:`SubmissionService.submit`."""

    course_id: str
    assignment_id: str
    student_id: str
    submitted_at: dt.datetime
    late: bool
    late_by_hours: float | None
    resubmission: bool
    events: tuple[DomainEvent, ...]


class SubmissionService:
    """Record assignment submissions and their lateness."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        config: AggregatorConfig | None = None,
        event_writer: DomainEventWriter | None = None,
        audit_sink: AuditSink | None = None,
    ) -> None:
        """Configure the service with its store and ledger writer."""
        self._session_factory = session_factory
        self._config = config or AggregatorConfig()
        self._events = event_writer or DomainEventWriter(session_factory)
        self._audit = audit_sink or DatabaseAuditSink()

    async def submit(
        self,
        course_id: str,
        assignment_id: str,
        *,
        actor: Actor,
        now: dt.datetime | None = None,
        request_id: str | None = None,
    ) -> SubmissionReceipt:
        """Record or replace the actor's submission for an assignment.

        Emits ``submission.submitted`` and, when past due,
        ``submission.late`` carrying ``dueAt``, ``submittedAt`` and
        ``lateByHours``. An existing grade on a resubmitted assignment is
        kept.

        Raises
        ------
        GradeNotFoundError
            When the assignment does not exist.
        LateSubmissionRejectedError
            When the assignment is past due and does not accept late work.

        """
        submitted_at = now or utcnow()

        async def _work(session: AsyncSession) -> SubmissionReceipt:
            source = await session.get(
                GradeSource, (course_id, SourceType.ASSIGNMENT.value, assignment_id)
            )
            if source is None:
                raise GradeNotFoundError(
                    SourceType.ASSIGNMENT, f"{course_id}/{assignment_id}"
                )

            due_at = source.due_at
            late = due_at is not None and submitted_at > due_at
            if late and not source.allow_late:
                raise LateSubmissionRejectedError(course_id, assignment_id)
            late_by_hours = (
                round((submitted_at - due_at).total_seconds() / SECONDS_PER_HOUR, 2)
                if late and due_at is not None
                else None
            )

            existing = await session.get(
                Submission, (course_id, assignment_id, actor.uid)
            )
            if existing is None:
                session.add(
                    Submission(
                        course_id=course_id,
                        assignment_id=assignment_id,
                        student_id=actor.uid,
                        submitted_at=submitted_at,
                        late=late,
                        assignment_version=source.version,
                    )
                )
            else:
                existing.submitted_at = submitted_at
                existing.late = late
                existing.assignment_version = source.version

            aggregate = EventAggregate(
                kind=AggregateKind.SUBMISSION,
                id=f"{assignment_id}:{actor.uid}",
                version=source.version,
            )
            await self._audit.write(
                session,
                AuditRecord(
                    action="submission.submit",
                    actor_uid=actor.uid,
                    actor_role=actor.role,
                    actor_email=actor.email,
                    request_id=request_id,
                    metadata={
                        "courseId": course_id,
                        "assignmentId": assignment_id,
                        "status": "resubmitted" if existing else "submitted",
                        "late": late,
                        "assignmentVersionAtSubmission": source.version,
                        "dueAt": due_at,
                    },
                ),
            )
            events = [
                await self._events.record(
                    session,
                    DomainEventInput(
                        type=EventType.SUBMISSION_SUBMITTED,
                        course_id=course_id,
                        actor_uid=actor.uid,
                        actor_role=actor.role,
                        aggregate=aggregate,
                        payload={
                            "courseId": course_id,
                            "assignmentId": assignment_id,
                            "studentId": actor.uid,
                            "assignmentVersionAtSubmission": source.version,
                        },
                        idempotency_key=build_idempotency_key(
                            EventType.SUBMISSION_SUBMITTED,
                            course_id,
                            assignment_id,
                            actor.uid,
                            version=source.version,
                        ),
                        request_id=request_id,
                        occurred_at=submitted_at,
                    ),
                )
            ]
            if late:
                events.append(
                    await self._events.record(
                        session,
                        DomainEventInput(
                            type=EventType.SUBMISSION_LATE,
                            course_id=course_id,
                            actor_uid=actor.uid,
                            actor_role=actor.role,
                            aggregate=aggregate,
                            payload={
                                "courseId": course_id,
                                "assignmentId": assignment_id,
                                "studentId": actor.uid,
                                "dueAt": due_at,
                                "submittedAt": submitted_at,
                                "lateByHours": late_by_hours,
                            },
                            idempotency_key=build_idempotency_key(
                                EventType.SUBMISSION_LATE,
                                course_id,
                                assignment_id,
                                actor.uid,
                                version=source.version,
                            ),
                            request_id=request_id,
                            occurred_at=submitted_at,
                        ),
                    )
                )

            return SubmissionReceipt(
                course_id=course_id,
                assignment_id=assignment_id,
                student_id=actor.uid,
                submitted_at=submitted_at,
                late=late,
                late_by_hours=late_by_hours,
                resubmission=existing is not None,
                events=tuple(events),
            )

        receipt = await run_in_transaction(
            self._session_factory,
            _work,
            operation="submit_assignment",
            max_attempts=self._config.max_attempts,
        )
        if receipt.late:
            log_info(
                logger,
                "Late submission for %s/%s by %s (%.2fh)",
                course_id,
                assignment_id,
                receipt.student_id,
                receipt.late_by_hours or 0.0,
            )
        return receipt
