"""Tests for ledger wire structures and idempotency keys."""

from __future__ import annotations

import datetime as dt

import msgspec
import pytest

from gradeledger.ledger import (
    DomainEvent,
    EventAggregate,
    EventType,
    build_idempotency_key,
    decode_events,
    encode_events,
    key_number,
)

OCCURRED_AT = dt.datetime(2025, 3, 1, 9, 30, tzinfo=dt.UTC)


def _event() -> DomainEvent:
    return DomainEvent(
        event_id="e1",
        type=EventType.TEST_ATTEMPT_STARTED,
        course_id="course_cs101",
        actor_uid="u_student_a",
        actor_role="student",
        aggregate=EventAggregate(kind="attempt", id="u_student_a__1", version=2),
        payload={"attemptNo": 1},
        idempotency_key="test.attempt.started:course_cs101:t1:u_student_a__1:v2",
        occurred_at=OCCURRED_AT,
    )


@pytest.mark.parametrize(
    ("args", "kwargs", "expected"),
    [
        (
            ("test.attempt.started", "c1", "t1", "u__1"),
            {"version": 2},
            "test.attempt.started:c1:t1:u__1:v2",
        ),
        (
            ("grade.mutated", "c1", "assignment", "hw1", "s1"),
            {"revision": 3},
            "grade.mutated:c1:assignment:hw1:s1:r3",
        ),
        (("course.created", "c1"), {}, "course.created:c1"),
    ],
)
def test_build_idempotency_key(
    args: tuple[str, ...], kwargs: dict[str, int], expected: str
) -> None:
    """Keys join type, course, path and version or revision with colons."""
    assert build_idempotency_key(*args, **kwargs) == expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (40, "40.0"),
        (1_234_567.0, "1234567.0"),
        (0.1 + 0.2, "0.30000000000000004"),
    ],
)
def test_key_number_keeps_full_precision(value: float, expected: str) -> None:
    """Key numbers round-trip exactly rather than rounding to six digits."""
    assert key_number(value) == expected


def test_events_encode_to_camel_case() -> None:
    """The wire form uses camelCase field names."""
    wire = msgspec.json.decode(encode_events([_event()]))

    assert wire[0]["eventId"] == "e1"
    assert wire[0]["courseId"] == "course_cs101"
    assert wire[0]["idempotencyKey"].endswith(":v2")
    assert wire[0]["aggregate"] == {
        "kind": "attempt",
        "id": "u_student_a__1",
        "version": 2,
    }


def test_decode_events_accepts_json_and_skips_bad_records() -> None:
    """Undecodable records are skipped without failing the batch."""
    good = msgspec.json.encode(_event())
    decoded = decode_events([good, b"{not json", {"type": "grade.mutated"}])

    assert decoded == [_event()]
