"""Errors raised while validating and persisting domain events."""

from __future__ import annotations

from gradeledger.common.errors import GradeLedgerError


class DomainEventValidationError(GradeLedgerError, ValueError):
    """Raised when an event input is malformed; nothing has been written."""

    def __init__(self, field: str, problem: str) -> None:
        """Record the offending field for 4xx-style reporting."""
        self.field = field
        super().__init__(f"{field} {problem}")

    @classmethod
    def required(cls, field: str) -> DomainEventValidationError:
        """Return an error for a missing or blank required field."""
        return cls(field, "must be a non-empty string")

    @classmethod
    def unknown_aggregate_kind(cls, kind: str) -> DomainEventValidationError:
        """Return an error for an aggregate kind outside the ledger vocabulary."""
        return cls("aggregate.kind", f"{kind!r} is not a known aggregate kind")


class TimezoneAwareRequiredError(DomainEventValidationError):
    """Raised when datetime inputs lack timezone information."""

    def __init__(self, context: str) -> None:
        """Attach a consistent message for the failing context."""
        super().__init__(context, "must be timezone aware")

    @classmethod
    def for_payload(cls) -> TimezoneAwareRequiredError:
        """Return an error indicating payload timestamps were naive."""
        return cls("payload datetime values")

    @classmethod
    def for_occurrence(cls) -> TimezoneAwareRequiredError:
        """Return an error indicating occurred_at was naive."""
        return cls("occurred_at")


class UnsupportedPayloadTypeError(DomainEventValidationError):
    """Raised when a payload contains values that are not JSON-safe."""

    def __init__(self, type_name: str) -> None:
        """Record the offending type name for diagnostics."""
        super().__init__("payload", f"contains unsupported type {type_name}")


class DomainEventPersistError(GradeLedgerError, RuntimeError):
    """Raised when a duplicate insert lost the race but no winner row exists."""

    def __init__(self, event_id: str) -> None:
        """Include the event id so the failure can be traced."""
        self.event_id = event_id
        super().__init__(f"expected existing domain event {event_id} after rollback")
