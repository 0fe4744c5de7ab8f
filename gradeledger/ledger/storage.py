"""Persistence models for the append-only domain event ledger."""

from __future__ import annotations

import datetime as dt
import typing as typ

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from gradeledger.common.time import utcnow
from gradeledger.ledger.errors import TimezoneAwareRequiredError
from gradeledger.ledger.models import DomainEvent, EventAggregate

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine


class Base(DeclarativeBase):
    """Declarative base shared by every gradeledger table."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime wrapper that round-trips UTC tzinfo even on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Force bound datetime values to UTC with tzinfo."""
        if value is None:
            return None
        if value.tzinfo is None:
            raise TimezoneAwareRequiredError.for_occurrence()
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Ensure result datetimes are UTC and timezone aware."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


class DomainEventRecord(Base):
    """Immutable record of a successful mutation, keyed by its idempotency key.

    ``event_id`` is the SHA-256 of ``idempotency_key``, so the primary key
    alone enforces at-most-once storage. Rows are never updated or deleted.
    """

    __tablename__ = "domain_events"
    __table_args__ = (
        Index("ix_domain_events_course_time", "course_id", "occurred_at"),
        Index("ix_domain_events_type", "event_type"),
    )

    event_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    event_type: Mapped[str] = mapped_column(String(64))
    course_id: Mapped[str] = mapped_column(String(128))
    actor_uid: Mapped[str] = mapped_column(String(128))
    actor_role: Mapped[str] = mapped_column(String(32))
    aggregate_kind: Mapped[str] = mapped_column(String(32))
    aggregate_id: Mapped[str] = mapped_column(String(255))
    aggregate_version: Mapped[int | None] = mapped_column(Integer, default=None)
    payload: Mapped[dict[str, typ.Any]] = mapped_column(JSON, default=dict)
    idempotency_key: Mapped[str] = mapped_column(Text(), unique=True)
    request_id: Mapped[str | None] = mapped_column(String(128), default=None)
    occurred_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    recorded_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)

    def to_event(self) -> DomainEvent:
        """Return the wire-shaped view of this row."""
        return DomainEvent(
            event_id=self.event_id,
            type=self.event_type,
            course_id=self.course_id,
            actor_uid=self.actor_uid,
            actor_role=self.actor_role,
            aggregate=EventAggregate(
                kind=self.aggregate_kind,
                id=self.aggregate_id,
                version=self.aggregate_version,
            ),
            payload=dict(self.payload),
            idempotency_key=self.idempotency_key,
            request_id=self.request_id,
            occurred_at=self.occurred_at,
        )


class AuditLogEntry(Base):
    """Human compliance trail written next to, never instead of, events."""

    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_action_time", "action", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(64))
    actor_uid: Mapped[str] = mapped_column(String(128))
    actor_email: Mapped[str | None] = mapped_column(String(255), default=None)
    actor_role: Mapped[str | None] = mapped_column(String(32), default=None)
    target_uid: Mapped[str | None] = mapped_column(String(128), default=None)
    request_id: Mapped[str | None] = mapped_column(String(128), default=None)
    metadata_json: Mapped[dict[str, typ.Any]] = mapped_column(
        "metadata", JSON, default=dict
    )
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)


async def init_ledger_storage(engine: AsyncEngine) -> None:
    """Create all tables registered with Base if they are absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
