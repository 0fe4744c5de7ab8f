"""Wire-level structures for domain events."""

from __future__ import annotations

import datetime as dt  # noqa: TC003
import enum
import typing as typ

import msgspec

from gradeledger.logging import get_logger, log_warning

logger = get_logger(__name__)


class EventType(enum.StrEnum):
    """Domain event types written by gradeledger services."""

    GRADE_MUTATED = "grade.mutated"
    GRADEBOOK_STUDENT_RECOMPUTED = "gradebook.student.recomputed"
    SUBMISSION_SUBMITTED = "submission.submitted"
    SUBMISSION_LATE = "submission.late"
    TEST_ATTEMPT_STARTED = "test.attempt.started"
    TEST_ATTEMPT_SUBMITTED = "test.attempt.submitted"


class AggregateKind(enum.StrEnum):
    """Persistent objects a domain event can describe."""

    COURSE = "course"
    STREAM_POST = "streamPost"
    ASSIGNMENT = "assignment"
    SUBMISSION = "submission"
    TEST = "test"
    ATTEMPT = "attempt"
    GRADE = "grade"
    GRADEBOOK = "gradebook"


class EventAggregate(msgspec.Struct, kw_only=True, frozen=True):
    """Reference to the aggregate an event describes.

    Attributes
    ----------
    kind
        One of the :class:`AggregateKind` values.
    id
        Identifier of the aggregate within its course.
    version
        Aggregate version after the mutation, when it has one.

    """

    kind: str
    id: str
    version: int | None = None


class DomainEvent(msgspec.Struct, kw_only=True, frozen=True, rename="camel"):
    """Immutable domain event as stored in the ledger and read by analysis.

    Encodes to the camelCase wire shape (``eventId``, ``courseId``,
    ``idempotencyKey`` ...). ``event_id`` is optional only so that hand-built
    analysis fixtures can omit it; the ledger always sets it.
    """

    type: str
    course_id: str
    actor_uid: str
    actor_role: str
    aggregate: EventAggregate
    idempotency_key: str
    occurred_at: dt.datetime
    event_id: str | None = None
    payload: dict[str, typ.Any] = msgspec.field(default_factory=dict)
    request_id: str | None = None


def build_idempotency_key(
    event_type: str,
    course_id: str,
    *path: str,
    version: int | None = None,
    revision: int | None = None,
) -> str:
    """Compose ``"{type}:{courseId}:{...path}:v{version}"`` style keys.

    Grade mutations are versioned by revision instead, giving ``:r{n}``.

    Examples
    --------
    >>> build_idempotency_key("test.attempt.started", "c1", "t1", "u__1", version=2)
    'test.attempt.started:c1:t1:u__1:v2'

    """
    parts = [event_type, course_id, *path]
    if version is not None:
        parts.append(f"v{version}")
    if revision is not None:
        parts.append(f"r{revision}")
    return ":".join(parts)


def key_number(value: float) -> str:
    """Render a number for a key path without losing precision.

    ``repr`` is the shortest string that round-trips, so distinct totals
    never share a key.

    Examples
    --------
    >>> key_number(1234567.0), key_number(1234568.0)
    ('1234567.0', '1234568.0')

    """
    return repr(float(value))


def decode_events(raw_events: typ.Iterable[object]) -> list[DomainEvent]:
    """Convert wire records (mappings or JSON bytes) into events.

    Records that fail to decode are logged and skipped; ledgers may hold
    entries written by newer schemas.
    """
    events: list[DomainEvent] = []
    for index, raw in enumerate(raw_events):
        try:
            if isinstance(raw, bytes | str):
                events.append(msgspec.json.decode(raw, type=DomainEvent))
            else:
                events.append(msgspec.convert(raw, type=DomainEvent))
        except msgspec.ValidationError as exc:
            log_warning(logger, "Skipping undecodable event #%d: %s", index, exc)
        except msgspec.DecodeError as exc:
            log_warning(logger, "Skipping malformed event JSON #%d: %s", index, exc)
    return events


def encode_events(events: typ.Sequence[DomainEvent]) -> bytes:
    """Encode events to their JSON wire form."""
    return msgspec.json.encode(list(events))
