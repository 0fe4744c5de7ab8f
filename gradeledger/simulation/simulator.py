"""Seeded synthetic ledger events for development and tests.

The generated stream is small but exercises every detector: one student is
always late in CS101, CS101 always carries a drifted recompute and an
18-start attempt burst in the final 45 minutes, and a share of ordinary
attempts are abandoned. Identical ``now`` and ``seed`` give identical events.
"""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
import hashlib
import random
import typing as typ

from gradeledger.common.time import is_aware
from gradeledger.ledger.errors import TimezoneAwareRequiredError
from gradeledger.ledger.models import (
    AggregateKind,
    DomainEvent,
    EventAggregate,
    EventType,
    build_idempotency_key,
    key_number,
)
from gradeledger.ledger.services import make_event_id

DEFAULT_SEED = "gradeledger-dev-sim-v1"
ASSIGNMENT_PUBLISHED = "assignment.published"
ASSIGNMENT_VERSION = 2
TEST_VERSION = 1
TEST_DURATION_MINUTES = 60
BURST_STARTS = 18
POINTS_POSSIBLE = 100.0


@dc.dataclass(frozen=True, slots=True)
class SimulatedCourse:
    """A course and the instructor who acts in it."""

    course_id: str
    instructor_uid: str
    title: str


COURSES: tuple[SimulatedCourse, ...] = (
    SimulatedCourse("course_cs101", "u_instructor_1", "CS101"),
    SimulatedCourse("course_math201", "u_instructor_2", "MATH201"),
)
STUDENTS: tuple[str, ...] = ("u_student_a", "u_student_b", "u_student_c", "u_student_d")
FORCED_LATE = ("course_cs101", "u_student_a")
DRIFT_COURSE = "course_cs101"
BURST_COURSE = "course_cs101"


def seeded_random(seed: str) -> random.Random:
    """Return a generator seeded from the first four bytes of sha256(seed)."""
    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    return random.Random(int.from_bytes(digest[:4], "little"))  # noqa: S311


class _EventStream:
    """Accumulates simulated events with sequential request ids."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []
        self._requests = 0

    def add(  # noqa: PLR0913
        self,
        event_type: str,
        course_id: str,
        actor: tuple[str, str],
        aggregate: EventAggregate,
        payload: dict[str, typ.Any],
        idempotency_key: str,
        occurred_at: dt.datetime,
    ) -> None:
        self._requests += 1
        actor_uid, actor_role = actor
        self.events.append(
            DomainEvent(
                event_id=make_event_id(idempotency_key),
                type=event_type,
                course_id=course_id,
                actor_uid=actor_uid,
                actor_role=actor_role,
                aggregate=aggregate,
                payload=payload,
                idempotency_key=idempotency_key,
                request_id=f"sim-req-{self._requests}",
                occurred_at=occurred_at,
            )
        )


def _simulate_assignments(
    stream: _EventStream,
    rng: random.Random,
    course: SimulatedCourse,
    start: dt.datetime,
) -> None:
    instructor = (course.instructor_uid, "instructor")
    late_rate = 0.25 if course.course_id == "course_cs101" else 0.12
    for index in (1, 2):
        assignment_id = f"a_{course.course_id}_{index}"
        due_at = start + dt.timedelta(
            days=2 + index, seconds=int(rng.random() * 3 * 3600)
        )
        stream.add(
            ASSIGNMENT_PUBLISHED,
            course.course_id,
            instructor,
            EventAggregate(
                kind=AggregateKind.ASSIGNMENT,
                id=assignment_id,
                version=ASSIGNMENT_VERSION,
            ),
            {
                "courseId": course.course_id,
                "assignmentId": assignment_id,
                "version": ASSIGNMENT_VERSION,
                "dueAt": due_at.isoformat(),
            },
            build_idempotency_key(
                ASSIGNMENT_PUBLISHED,
                course.course_id,
                assignment_id,
                version=ASSIGNMENT_VERSION,
            ),
            start + dt.timedelta(hours=index),
        )

        for student in STUDENTS:
            forced = (course.course_id, student) == FORCED_LATE
            late = forced or rng.random() < late_rate
            submitted_at = (
                due_at + dt.timedelta(hours=2 + int(rng.random() * 48))
                if late
                else due_at - dt.timedelta(hours=1)
            )
            aggregate = EventAggregate(
                kind=AggregateKind.SUBMISSION,
                id=f"{assignment_id}:{student}",
                version=ASSIGNMENT_VERSION,
            )
            stream.add(
                EventType.SUBMISSION_SUBMITTED,
                course.course_id,
                (student, "student"),
                aggregate,
                {
                    "courseId": course.course_id,
                    "assignmentId": assignment_id,
                    "studentId": student,
                    "assignmentVersionAtSubmission": ASSIGNMENT_VERSION,
                },
                build_idempotency_key(
                    EventType.SUBMISSION_SUBMITTED,
                    course.course_id,
                    assignment_id,
                    student,
                    version=ASSIGNMENT_VERSION,
                ),
                submitted_at,
            )
            if late:
                late_by = (submitted_at - due_at).total_seconds() / 3600
                stream.add(
                    EventType.SUBMISSION_LATE,
                    course.course_id,
                    (student, "student"),
                    aggregate,
                    {
                        "courseId": course.course_id,
                        "assignmentId": assignment_id,
                        "studentId": student,
                        "dueAt": due_at.isoformat(),
                        "submittedAt": submitted_at.isoformat(),
                        "lateByHours": round(late_by, 2),
                    },
                    build_idempotency_key(
                        EventType.SUBMISSION_LATE,
                        course.course_id,
                        assignment_id,
                        student,
                        version=ASSIGNMENT_VERSION,
                    ),
                    submitted_at,
                )

        for student in STUDENTS:
            if rng.random() >= 0.75:  # noqa: PLR2004
                continue
            score = float(round(POINTS_POSSIBLE * (0.5 + rng.random() * 0.5)))
            graded_at = due_at + dt.timedelta(
                days=2, seconds=int(rng.random() * 8 * 3600)
            )
            grade_id = f"assignment_{assignment_id}_{student}"
            stream.add(
                EventType.GRADE_MUTATED,
                course.course_id,
                instructor,
                EventAggregate(kind=AggregateKind.GRADE, id=grade_id, version=1),
                {
                    "courseId": course.course_id,
                    "sourceType": "assignment",
                    "sourceId": assignment_id,
                    "studentId": student,
                    "pointsPossible": POINTS_POSSIBLE,
                    "before": {"score": None, "gradeRevision": 0},
                    "after": {"score": score, "gradeRevision": 1},
                },
                build_idempotency_key(
                    EventType.GRADE_MUTATED,
                    course.course_id,
                    "assignment",
                    assignment_id,
                    student,
                    revision=1,
                ),
                graded_at,
            )


def _simulate_recompute(
    stream: _EventStream,
    rng: random.Random,
    course: SimulatedCourse,
    now: dt.datetime,
) -> None:
    drifted = course.course_id == DRIFT_COURSE
    delta_score = float(5 + int(rng.random() * 10)) if drifted else 0.0
    student = rng.choice(STUDENTS)
    total_score, total_possible = 250.0, 300.0
    live_score = total_score - delta_score
    stream.add(
        EventType.GRADEBOOK_STUDENT_RECOMPUTED,
        course.course_id,
        (course.instructor_uid, "instructor"),
        EventAggregate(kind=AggregateKind.GRADEBOOK, id=student),
        {
            "courseId": course.course_id,
            "studentId": student,
            "totalScore": total_score,
            "totalPossible": total_possible,
            "liveTotalScore": live_score,
            "liveTotalPossible": total_possible,
            "deltaTotalScore": delta_score,
            "deltaTotalPossible": 0.0,
            "driftFlagged": drifted,
            "reason": "periodic_reconcile",
            "repaired": False,
        },
        build_idempotency_key(
            EventType.GRADEBOOK_STUDENT_RECOMPUTED,
            course.course_id,
            student,
            key_number(total_score),
            key_number(total_possible),
            key_number(live_score),
            key_number(total_possible),
            "reported",
        ),
        now - dt.timedelta(hours=6),
    )


def _start_attempt(  # noqa: PLR0913
    stream: _EventStream,
    course_id: str,
    test_id: str,
    student: str,
    attempt_id: str,
    attempt_no: int,
    started_at: dt.datetime,
) -> None:
    stream.add(
        EventType.TEST_ATTEMPT_STARTED,
        course_id,
        (student, "student"),
        EventAggregate(kind=AggregateKind.ATTEMPT, id=attempt_id, version=TEST_VERSION),
        {
            "courseId": course_id,
            "testId": test_id,
            "attemptId": attempt_id,
            "attemptNo": attempt_no,
            "testVersion": TEST_VERSION,
            "durationMinutes": TEST_DURATION_MINUTES,
        },
        build_idempotency_key(
            EventType.TEST_ATTEMPT_STARTED,
            course_id,
            test_id,
            attempt_id,
            version=TEST_VERSION,
        ),
        started_at,
    )


def _simulate_attempts(
    stream: _EventStream,
    rng: random.Random,
    course: SimulatedCourse,
    now: dt.datetime,
) -> None:
    test_id = f"t_{course.course_id}_1"
    for student in STUDENTS:
        attempts = 2 if rng.random() < 0.25 else 1  # noqa: PLR2004
        for attempt_no in range(1, attempts + 1):
            attempt_id = f"{student}__{attempt_no}"
            started_at = now - dt.timedelta(hours=48 - int(rng.random() * 24))
            _start_attempt(
                stream,
                course.course_id,
                test_id,
                student,
                attempt_id,
                attempt_no,
                started_at,
            )
            if rng.random() >= 0.85:  # noqa: PLR2004
                continue
            stream.add(
                EventType.TEST_ATTEMPT_SUBMITTED,
                course.course_id,
                (student, "student"),
                EventAggregate(
                    kind=AggregateKind.ATTEMPT, id=attempt_id, version=TEST_VERSION
                ),
                {
                    "courseId": course.course_id,
                    "testId": test_id,
                    "attemptId": attempt_id,
                    "attemptNo": attempt_no,
                    "testVersion": TEST_VERSION,
                    "score": float(10 + int(rng.random() * 11)),
                },
                build_idempotency_key(
                    EventType.TEST_ATTEMPT_SUBMITTED,
                    course.course_id,
                    test_id,
                    attempt_id,
                    version=TEST_VERSION,
                ),
                started_at + dt.timedelta(minutes=15 + int(rng.random() * 40)),
            )

    if course.course_id != BURST_COURSE:
        return
    burst_start = now - dt.timedelta(minutes=45)
    for index in range(BURST_STARTS):
        student = rng.choice(STUDENTS)
        _start_attempt(
            stream,
            course.course_id,
            test_id,
            student,
            f"{student}__burst_{index}",
            100 + index,
            burst_start + dt.timedelta(minutes=index),
        )


def simulate_domain_events(
    now: dt.datetime, seed: str = DEFAULT_SEED
) -> list[DomainEvent]:
    """Build a deterministic event stream ending at ``now``.

    Parameters
    ----------
    now
        Timezone-aware instant the stream ends at.
    seed
        Seed string; identical seeds give identical streams.

    Returns
    -------
    list[DomainEvent]
        Events ordered by ``occurredAt`` then ``eventId``.

    """
    if not is_aware(now):
        raise TimezoneAwareRequiredError("now")
    rng = seeded_random(seed)
    stream = _EventStream()
    start = now - dt.timedelta(days=7)
    for course in COURSES:
        _simulate_assignments(stream, rng, course, start)
        _simulate_recompute(stream, rng, course, now)
    for course in COURSES:
        _simulate_attempts(stream, rng, course, now)
    return sorted(
        stream.events, key=lambda event: (event.occurred_at, event.event_id or "")
    )
