"""Append-only domain event ledger and its audit trail."""

from __future__ import annotations

from .audit import AuditRecord, AuditSink, DatabaseAuditSink
from .errors import (
    DomainEventPersistError,
    DomainEventValidationError,
    TimezoneAwareRequiredError,
    UnsupportedPayloadTypeError,
)
from .models import (
    AggregateKind,
    DomainEvent,
    EventAggregate,
    EventType,
    build_idempotency_key,
    decode_events,
    encode_events,
    key_number,
)
from .reader import LedgerSnapshotReader
from .services import DomainEventInput, DomainEventWriter, make_event_id
from .storage import (
    AuditLogEntry,
    Base,
    DomainEventRecord,
    UTCDateTime,
    init_ledger_storage,
)

__all__ = [
    "AggregateKind",
    "AuditLogEntry",
    "AuditRecord",
    "AuditSink",
    "Base",
    "DatabaseAuditSink",
    "DomainEvent",
    "DomainEventInput",
    "DomainEventPersistError",
    "DomainEventRecord",
    "DomainEventValidationError",
    "DomainEventWriter",
    "EventAggregate",
    "EventType",
    "LedgerSnapshotReader",
    "TimezoneAwareRequiredError",
    "UTCDateTime",
    "UnsupportedPayloadTypeError",
    "build_idempotency_key",
    "decode_events",
    "encode_events",
    "init_ledger_storage",
    "key_number",
    "make_event_id",
]
