"""Errors raised by the gradebook aggregator."""

from __future__ import annotations

import enum

from gradeledger.common.errors import GradeLedgerError


class GradeValidationReason(enum.StrEnum):
    """Machine-readable reasons for rejected grade mutations."""

    INVALID_SCORE = "invalid_score"
    SCORE_EXCEEDS_POSSIBLE = "score_exceeds_possible"
    INVALID_POINTS_POSSIBLE = "invalid_points_possible"
    POINTS_POSSIBLE_MISMATCH = "points_possible_mismatch"
    MISSING_IDENTIFIER = "missing_identifier"
    FEEDBACK_TOO_LONG = "feedback_too_long"
    TOO_MANY_GRADES = "too_many_grades"


class GradeValidationError(GradeLedgerError, ValueError):
    """Raised when a grade mutation is rejected; nothing has been written."""

    def __init__(self, message: str, reason: GradeValidationReason) -> None:
        """Store a machine-readable reason for programmatic handling."""
        super().__init__(message)
        self.reason = reason

    @classmethod
    def invalid_score(cls) -> GradeValidationError:
        """Score is not a finite, non-negative number."""
        return cls(
            "score must be a finite number >= 0",
            GradeValidationReason.INVALID_SCORE,
        )

    @classmethod
    def score_exceeds_possible(
        cls, score: float, points_possible: float
    ) -> GradeValidationError:
        """Score is larger than the points available."""
        return cls(
            f"score {score} exceeds pointsPossible {points_possible}",
            GradeValidationReason.SCORE_EXCEEDS_POSSIBLE,
        )

    @classmethod
    def invalid_points_possible(cls) -> GradeValidationError:
        """pointsPossible is negative or not finite."""
        return cls(
            "pointsPossible must be a finite number >= 0",
            GradeValidationReason.INVALID_POINTS_POSSIBLE,
        )

    @classmethod
    def points_possible_mismatch(
        cls, supplied: float, defined: float
    ) -> GradeValidationError:
        """Caller's pointsPossible disagrees with the source definition."""
        return cls(
            f"pointsPossible {supplied} does not match source definition {defined}",
            GradeValidationReason.POINTS_POSSIBLE_MISMATCH,
        )

    @classmethod
    def missing_identifier(cls, field: str) -> GradeValidationError:
        """A required identifier is blank."""
        return cls(
            f"{field} must be a non-empty string",
            GradeValidationReason.MISSING_IDENTIFIER,
        )

    @classmethod
    def feedback_too_long(cls, limit: int) -> GradeValidationError:
        """Sanitised feedback exceeds the configured limit."""
        return cls(
            f"feedback exceeds {limit} characters",
            GradeValidationReason.FEEDBACK_TOO_LONG,
        )

    @classmethod
    def too_many_grades(cls, limit: int) -> GradeValidationError:
        """A recompute would scan more grade records than allowed."""
        return cls(
            f"too many grades to recompute (limit {limit})",
            GradeValidationReason.TOO_MANY_GRADES,
        )


class GradeNotFoundError(GradeLedgerError, LookupError):
    """Raised when the course or grade source does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        """Record what was missing."""
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier!r} not found")


class GradeContentionError(GradeLedgerError):
    """Raised when a transaction kept conflicting after bounded retries.

    The whole operation may be replayed by the caller.
    """

    retryable = True

    def __init__(self, operation: str, attempts: int) -> None:
        """Record the operation name and how many attempts were made."""
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"{operation} aborted after {attempts} conflicting attempt(s); retry later"
        )
