"""Audit trail sink written alongside domain events."""

from __future__ import annotations

import dataclasses as dc
import typing as typ

from gradeledger.ledger.services import normalise_payload
from gradeledger.ledger.storage import AuditLogEntry

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


@dc.dataclass(frozen=True, slots=True)
class AuditRecord:
    """One compliance trail entry describing who did what to whom."""

    action: str
    actor_uid: str
    actor_role: str | None = None
    actor_email: str | None = None
    target_uid: str | None = None
    request_id: str | None = None
    metadata: dict[str, typ.Any] = dc.field(default_factory=dict)


class AuditSink(typ.Protocol):
    """Destination for audit records, called inside the mutation transaction."""

    async def write(self, session: AsyncSession, record: AuditRecord) -> None:
        """Persist ``record`` using the caller's session."""
        ...


class DatabaseAuditSink:
    """Store audit records in the ``audit_logs`` table."""

    async def write(self, session: AsyncSession, record: AuditRecord) -> None:
        """Add an :class:`AuditLogEntry` row to the open transaction."""
        metadata = normalise_payload(record.metadata)
        session.add(
            AuditLogEntry(
                action=record.action,
                actor_uid=record.actor_uid,
                actor_email=record.actor_email,
                actor_role=record.actor_role,
                target_uid=record.target_uid,
                request_id=record.request_id,
                metadata_json=metadata if isinstance(metadata, dict) else {},
            )
        )
