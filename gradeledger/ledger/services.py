"""Services for appending domain events to the ledger."""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
import hashlib
import math
import typing as typ

from sqlalchemy.exc import IntegrityError

from gradeledger.common.time import is_aware, utcnow
from gradeledger.ledger.errors import (
    DomainEventPersistError,
    DomainEventValidationError,
    TimezoneAwareRequiredError,
    UnsupportedPayloadTypeError,
)
from gradeledger.ledger.models import AggregateKind, DomainEvent, EventAggregate
from gradeledger.ledger.storage import DomainEventRecord
from gradeledger.logging import get_logger, log_debug

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

Payload: typ.TypeAlias = dict[str, typ.Any]
JSONValue: typ.TypeAlias = (
    dict[str, typ.Any] | list[typ.Any] | str | int | float | bool | None
)

logger = get_logger(__name__)

_AGGREGATE_KINDS = frozenset(kind.value for kind in AggregateKind)


@dc.dataclass(frozen=True, slots=True)
class DomainEventInput:
    """Caller-supplied description of an event to append."""

    type: str
    course_id: str
    actor_uid: str
    actor_role: str
    aggregate: EventAggregate
    idempotency_key: str
    payload: Payload = dc.field(default_factory=dict)
    request_id: str | None = None
    occurred_at: dt.datetime | None = None


def _normalise_datetime_for_payload(value: dt.datetime) -> str:
    if not is_aware(value):
        raise TimezoneAwareRequiredError.for_payload()
    return value.astimezone(dt.UTC).isoformat()


def normalise_payload(payload: object) -> JSONValue:
    """Deep-copy payload converting datetimes and rejecting unsupported types.

    Supported types: dict, list, tuple, str, int, float, bool, None and
    timezone-aware datetime. Non-finite floats are rejected because they have
    no JSON representation.
    """
    match payload:
        case dict():
            return {str(k): normalise_payload(v) for k, v in payload.items()}
        case list() | tuple():
            return [normalise_payload(item) for item in payload]
        case dt.datetime():
            return _normalise_datetime_for_payload(payload)
        case float() if not math.isfinite(payload):
            raise UnsupportedPayloadTypeError("non-finite float")
        case None | bool() | int() | float() | str():
            return payload
        case _:
            raise UnsupportedPayloadTypeError(type(payload).__name__)


def make_event_id(idempotency_key: str) -> str:
    """Derive the content-addressed event id from an idempotency key."""
    if not idempotency_key or not idempotency_key.strip():
        raise DomainEventValidationError.required("idempotency_key")
    return hashlib.sha256(idempotency_key.encode("utf-8")).hexdigest()


def _require_text(value: object, field: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise DomainEventValidationError.required(field)


def validate_event_input(event: DomainEventInput) -> tuple[str, Payload]:
    """Validate ``event`` and return its event id and normalised payload.

    Raises
    ------
    DomainEventValidationError
        When any required field is blank, the aggregate kind is unknown,
        ``occurred_at`` is naive or the payload is not JSON-safe.

    """
    _require_text(event.type, "type")
    _require_text(event.course_id, "course_id")
    _require_text(event.actor_uid, "actor_uid")
    _require_text(event.actor_role, "actor_role")
    _require_text(event.aggregate.id, "aggregate.id")
    if event.aggregate.kind not in _AGGREGATE_KINDS:
        raise DomainEventValidationError.unknown_aggregate_kind(event.aggregate.kind)
    if event.occurred_at is not None and not is_aware(event.occurred_at):
        raise TimezoneAwareRequiredError.for_occurrence()

    event_id = make_event_id(event.idempotency_key)
    payload = normalise_payload(event.payload)
    if not isinstance(payload, dict):
        raise DomainEventValidationError("payload", "must be a mapping")
    return event_id, payload


def _build_record(
    event: DomainEventInput, event_id: str, payload: Payload
) -> DomainEventRecord:
    return DomainEventRecord(
        event_id=event_id,
        event_type=event.type,
        course_id=event.course_id,
        actor_uid=event.actor_uid,
        actor_role=event.actor_role,
        aggregate_kind=event.aggregate.kind,
        aggregate_id=event.aggregate.id,
        aggregate_version=event.aggregate.version,
        payload=payload,
        idempotency_key=event.idempotency_key,
        request_id=event.request_id,
        occurred_at=event.occurred_at or utcnow(),
    )


class DomainEventWriter:
    """Append-only, idempotent writer for the domain event ledger."""

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession] | None = None
    ) -> None:
        """Store the session factory used by standalone :meth:`emit` calls."""
        self._session_factory = session_factory

    async def record(
        self, session: AsyncSession, event: DomainEventInput
    ) -> DomainEvent:
        """Append ``event`` inside the caller's open transaction.

        The caller owns commit and rollback, so the event and the mutation it
        describes land together or not at all. A duplicate key already in the
        ledger returns the stored event unchanged. A concurrent duplicate
        that commits first makes the caller's commit fail with
        ``IntegrityError``; the caller must replay the whole transaction.
        """
        event_id, payload = validate_event_input(event)

        existing = await session.get(DomainEventRecord, event_id)
        if existing is not None:
            log_debug(logger, "Domain event %s already recorded", event_id)
            return existing.to_event()

        record = _build_record(event, event_id, payload)
        session.add(record)
        return record.to_event()

    async def emit(self, event: DomainEventInput) -> DomainEvent:
        """Append ``event`` in its own transaction.

        Safe under concurrent duplicate emits: the loser of an insert race
        rolls back and returns the winner's row.
        """
        if self._session_factory is None:
            msg = "emit() requires a session factory; use record() in a transaction"
            raise RuntimeError(msg)

        event_id, payload = validate_event_input(event)

        async with self._session_factory() as session:
            existing = await session.get(DomainEventRecord, event_id)
            if existing is not None:
                return existing.to_event()

            record = _build_record(event, event_id, payload)
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                winner = await session.get(DomainEventRecord, event_id)
                if winner is None:
                    raise DomainEventPersistError(event_id) from exc
                return winner.to_event()

            return record.to_event()
