"""Unit tests for the domain event ledger writer."""

from __future__ import annotations

import asyncio
import datetime as dt
import typing as typ

import pytest

from gradeledger.ledger import (
    AggregateKind,
    AuditLogEntry,
    AuditRecord,
    DatabaseAuditSink,
    DomainEvent,
    DomainEventInput,
    DomainEventRecord,
    DomainEventValidationError,
    DomainEventWriter,
    EventAggregate,
    TimezoneAwareRequiredError,
    UnsupportedPayloadTypeError,
    make_event_id,
)
from tests.helpers.builders import count_rows

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

OCCURRED_AT = dt.datetime(2025, 3, 1, 9, 30, tzinfo=dt.UTC)
KEY = "submission.submitted:course_cs101:hw1:u_student_a:v1"


def _event_input(**overrides: object) -> DomainEventInput:
    fields: dict[str, typ.Any] = {
        "type": "submission.submitted",
        "course_id": "course_cs101",
        "actor_uid": "u_student_a",
        "actor_role": "student",
        "aggregate": EventAggregate(
            kind=AggregateKind.SUBMISSION, id="hw1:u_student_a", version=1
        ),
        "idempotency_key": KEY,
        "payload": {"assignmentId": "hw1", "studentId": "u_student_a"},
        "occurred_at": OCCURRED_AT,
    }
    fields.update(overrides)
    return DomainEventInput(**fields)


def test_event_id_is_sha256_of_idempotency_key() -> None:
    """Event ids are the hex SHA-256 digest of the key."""
    assert make_event_id("abc") == (
        "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    )


def test_event_id_requires_key() -> None:
    """Blank keys cannot derive an event id."""
    with pytest.raises(DomainEventValidationError):
        make_event_id("  ")


def test_emit_persists_event(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """A first emit stores the event with the derived id."""
    writer = DomainEventWriter(session_factory)
    event = asyncio.run(writer.emit(_event_input()))

    assert event.event_id == make_event_id(KEY)
    assert event.occurred_at == OCCURRED_AT, "occurred_at should round-trip"
    assert event.payload == {"assignmentId": "hw1", "studentId": "u_student_a"}
    assert asyncio.run(count_rows(session_factory, DomainEventRecord)) == 1


def test_emit_is_idempotent_per_key(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Re-emitting a key returns the first event and stores nothing new."""
    writer = DomainEventWriter(session_factory)

    async def _emit_twice() -> tuple[DomainEvent, DomainEvent]:
        first = await writer.emit(_event_input())
        second = await writer.emit(
            _event_input(payload={"different": True}, request_id="retry-1")
        )
        return first, second

    first, second = asyncio.run(_emit_twice())

    assert second == first, "duplicate emit should return the stored event"
    assert second.payload == {"assignmentId": "hw1", "studentId": "u_student_a"}
    assert asyncio.run(count_rows(session_factory, DomainEventRecord)) == 1


def test_concurrent_duplicate_emits_store_one_event(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Racing emits of the same key all resolve to a single row."""
    writer = DomainEventWriter(session_factory)

    async def _race() -> list[DomainEvent]:
        return list(
            await asyncio.gather(*(writer.emit(_event_input()) for _ in range(5)))
        )

    events = asyncio.run(_race())

    assert {event.event_id for event in events} == {make_event_id(KEY)}
    assert asyncio.run(count_rows(session_factory, DomainEventRecord)) == 1


def test_record_joins_caller_transaction(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Events recorded in a rolled-back transaction are not stored."""
    writer = DomainEventWriter()

    async def _rollback() -> None:
        async with session_factory() as session:
            await writer.record(session, _event_input())
            await DatabaseAuditSink().write(
                session, AuditRecord(action="submission.submit", actor_uid="u")
            )
            await session.rollback()

    asyncio.run(_rollback())

    assert asyncio.run(count_rows(session_factory, DomainEventRecord)) == 0
    assert asyncio.run(count_rows(session_factory, AuditLogEntry)) == 0


def test_record_returns_existing_event(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Recording a stored key inside a transaction returns the stored event."""
    writer = DomainEventWriter(session_factory)
    stored = asyncio.run(writer.emit(_event_input()))

    async def _record_again() -> DomainEvent:
        async with session_factory() as session, session.begin():
            return await writer.record(session, _event_input(payload={"x": 1}))

    assert asyncio.run(_record_again()) == stored


def test_emit_without_session_factory_fails() -> None:
    """Standalone emits need a session factory."""
    with pytest.raises(RuntimeError, match="session factory"):
        asyncio.run(DomainEventWriter().emit(_event_input()))


@pytest.mark.parametrize(
    ("overrides", "field"),
    [
        ({"type": ""}, "type"),
        ({"course_id": "  "}, "course_id"),
        ({"actor_uid": ""}, "actor_uid"),
        ({"idempotency_key": ""}, "idempotency_key"),
        (
            {"aggregate": EventAggregate(kind="invoice", id="x")},
            "aggregate.kind",
        ),
        ({"aggregate": EventAggregate(kind="grade", id="")}, "aggregate.id"),
    ],
)
def test_emit_rejects_invalid_input(
    session_factory: async_sessionmaker[AsyncSession],
    overrides: dict[str, object],
    field: str,
) -> None:
    """Malformed inputs fail validation and write nothing."""
    writer = DomainEventWriter(session_factory)

    with pytest.raises(DomainEventValidationError) as excinfo:
        asyncio.run(writer.emit(_event_input(**overrides)))

    assert excinfo.value.field == field
    assert asyncio.run(count_rows(session_factory, DomainEventRecord)) == 0


def test_emit_rejects_naive_occurred_at(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Naive occurred_at values are rejected."""
    writer = DomainEventWriter(session_factory)
    naive = dt.datetime(2025, 3, 1, 9, 30)  # noqa: DTZ001 - intentional naive value

    with pytest.raises(TimezoneAwareRequiredError):
        asyncio.run(writer.emit(_event_input(occurred_at=naive)))


def test_payload_datetimes_are_normalised(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Aware payload datetimes are stored as UTC ISO strings."""
    writer = DomainEventWriter(session_factory)
    due_at = dt.datetime(2025, 3, 1, 12, 0, tzinfo=dt.timezone(dt.timedelta(hours=2)))
    payload = {"dueAt": due_at, "tags": ("late", "resubmitted")}

    event = asyncio.run(writer.emit(_event_input(payload=payload)))

    assert event.payload == {
        "dueAt": "2025-03-01T10:00:00+00:00",
        "tags": ["late", "resubmitted"],
    }
    assert isinstance(payload["dueAt"], dt.datetime), "caller payload is untouched"


@pytest.mark.parametrize(
    ("payload", "error"),
    [
        ({"when": dt.datetime(2025, 3, 1)}, TimezoneAwareRequiredError),  # noqa: DTZ001
        ({"score": float("nan")}, UnsupportedPayloadTypeError),
        ({"blob": b"raw"}, UnsupportedPayloadTypeError),
        ({"ids": {1, 2}}, UnsupportedPayloadTypeError),
    ],
)
def test_emit_rejects_unsafe_payloads(
    session_factory: async_sessionmaker[AsyncSession],
    payload: dict[str, object],
    error: type[Exception],
) -> None:
    """Payloads must be JSON-safe."""
    writer = DomainEventWriter(session_factory)

    with pytest.raises(error):
        asyncio.run(writer.emit(_event_input(payload=payload)))
