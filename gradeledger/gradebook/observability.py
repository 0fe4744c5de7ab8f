"""Structured lifecycle events for gradebook transactions.

All events are emitted through femtologging as ``[event.type] key=value``
lines so log aggregators can parse them. Successful mutations log at INFO,
retries and drift at WARNING, exhausted or failed transactions at ERROR.

Usage
-----
>>> event_logger = GradebookEventLogger()
>>> event_logger.log_retry(operation="set_grade", attempt=1, error=exc)

"""

from __future__ import annotations

import enum
import typing as typ

from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.orm.exc import StaleDataError

from gradeledger.gradebook.errors import (
    GradeContentionError,
    GradeNotFoundError,
    GradeValidationError,
)
from gradeledger.ledger.errors import DomainEventValidationError
from gradeledger.logging import get_logger, log_error, log_info, log_warning

if typ.TYPE_CHECKING:
    from gradeledger.gradebook.service import GradeMutation, RecomputeResult

logger = get_logger(__name__)


class GradebookEventType(enum.StrEnum):
    """Structured log event types for gradebook transactions."""

    GRADE_MUTATED = "gradebook.grade.mutated"
    TX_RETRY = "gradebook.tx.retry"
    TX_EXHAUSTED = "gradebook.tx.exhausted"
    TX_FAILED = "gradebook.tx.failed"
    RECOMPUTE_COMPLETED = "gradebook.recompute.completed"
    RECOMPUTE_DRIFT = "gradebook.recompute.drift"


class ErrorCategory(enum.StrEnum):
    """Categories for error classification in alerts."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONTENTION = "contention"
    DATABASE_CONNECTIVITY = "database_connectivity"
    DATA_INTEGRITY = "data_integrity"
    DATABASE_ERROR = "database_error"
    UNKNOWN = "unknown"


_EXCEPTION_CATEGORY_MAP: tuple[tuple[type[BaseException], ErrorCategory], ...] = (
    (GradeValidationError, ErrorCategory.VALIDATION),
    (DomainEventValidationError, ErrorCategory.VALIDATION),
    (GradeNotFoundError, ErrorCategory.NOT_FOUND),
    (GradeContentionError, ErrorCategory.CONTENTION),
    (StaleDataError, ErrorCategory.CONTENTION),
    (OperationalError, ErrorCategory.DATABASE_CONNECTIVITY),
    (InterfaceError, ErrorCategory.DATABASE_CONNECTIVITY),
    (IntegrityError, ErrorCategory.DATA_INTEGRITY),
    (SQLAlchemyError, ErrorCategory.DATABASE_ERROR),
)


def categorize_error(exc: BaseException) -> ErrorCategory:
    """Categorize an exception for alert routing."""
    for exc_type, category in _EXCEPTION_CATEGORY_MAP:
        if isinstance(exc, exc_type):
            return category
    return ErrorCategory.UNKNOWN


class GradebookEventLogger:
    """Emit structured gradebook events via femtologging."""

    def log_grade_mutated(
        self, *, course_id: str, grade_id: str, mutation: GradeMutation
    ) -> None:
        """Log a committed grade mutation with its before/after revisions."""
        log_info(
            logger,
            "[%s] course_id=%s grade_id=%s before_revision=%d after_revision=%d "
            "delta_score=%s delta_possible=%s",
            GradebookEventType.GRADE_MUTATED,
            course_id,
            grade_id,
            mutation.before.grade_revision,
            mutation.after.grade_revision,
            mutation.delta_score,
            mutation.delta_possible,
        )

    def log_retry(self, *, operation: str, attempt: int, error: BaseException) -> None:
        """Log a conflicting attempt that will be replayed."""
        log_warning(
            logger,
            "[%s] operation=%s attempt=%d error_type=%s error_category=%s",
            GradebookEventType.TX_RETRY,
            operation,
            attempt,
            type(error).__name__,
            categorize_error(error),
        )

    def log_exhausted(
        self, *, operation: str, attempts: int, error: BaseException
    ) -> None:
        """Log a transaction abandoned after its final conflicting attempt."""
        log_error(
            logger,
            "[%s] operation=%s attempts=%d error_type=%s error_message=%s",
            GradebookEventType.TX_EXHAUSTED,
            operation,
            attempts,
            type(error).__name__,
            str(error),
            exc_info=error,
        )

    def log_failed(self, *, operation: str, error: BaseException) -> None:
        """Log a transaction aborted by a non-retryable error."""
        log_warning(
            logger,
            "[%s] operation=%s error_type=%s error_category=%s error_message=%s",
            GradebookEventType.TX_FAILED,
            operation,
            type(error).__name__,
            categorize_error(error),
            str(error),
        )

    def log_recompute(self, *, result: RecomputeResult) -> None:
        """Log a recompute pass, at WARNING when drift was found."""
        if result.drift_flagged:
            log_warning(
                logger,
                "[%s] course_id=%s student_id=%s delta_total_score=%s "
                "delta_total_possible=%s repaired=%s",
                GradebookEventType.RECOMPUTE_DRIFT,
                result.course_id,
                result.student_id,
                result.delta_total_score,
                result.delta_total_possible,
                result.repaired,
            )
            return
        log_info(
            logger,
            "[%s] course_id=%s student_id=%s total_score=%s total_possible=%s",
            GradebookEventType.RECOMPUTE_COMPLETED,
            result.course_id,
            result.student_id,
            result.total_score,
            result.total_possible,
        )
