"""Errors raised by coursework lifecycle services."""

from __future__ import annotations

import enum

from gradeledger.common.errors import GradeLedgerError


class AttemptStateReason(enum.StrEnum):
    """Why a test attempt transition was refused."""

    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    NOT_OWNER = "not_owner"
    NOT_STARTED = "not_started"
    EXPIRED = "expired"


class AttemptStateError(GradeLedgerError):
    """Raised when a test attempt is not in a state that allows the action."""

    def __init__(self, message: str, reason: AttemptStateReason) -> None:
        """Store a machine-readable reason for programmatic handling."""
        super().__init__(message)
        self.reason = reason

    @classmethod
    def attempts_exhausted(cls, test_id: str, allowed: int) -> AttemptStateError:
        """The user has used every attempt the test allows."""
        return cls(
            f"no remaining attempts for test {test_id!r} (allowed {allowed})",
            AttemptStateReason.ATTEMPTS_EXHAUSTED,
        )

    @classmethod
    def not_owner(cls, attempt_id: str) -> AttemptStateError:
        """The caller did not start this attempt."""
        return cls(
            f"attempt {attempt_id!r} belongs to another user",
            AttemptStateReason.NOT_OWNER,
        )

    @classmethod
    def not_started(cls, attempt_id: str, status: str) -> AttemptStateError:
        """The attempt was already submitted."""
        return cls(
            f"attempt {attempt_id!r} is {status}, not started",
            AttemptStateReason.NOT_STARTED,
        )

    @classmethod
    def expired(cls, attempt_id: str) -> AttemptStateError:
        """The attempt's allotted time has passed."""
        return cls(f"attempt {attempt_id!r} has expired", AttemptStateReason.EXPIRED)


class LateSubmissionRejectedError(GradeLedgerError):
    """Raised when an assignment past its due date does not accept late work."""

    def __init__(self, course_id: str, assignment_id: str) -> None:
        """Record which assignment refused the submission."""
        self.course_id = course_id
        self.assignment_id = assignment_id
        super().__init__(
            f"late submissions are not allowed for {course_id}/{assignment_id}"
        )
