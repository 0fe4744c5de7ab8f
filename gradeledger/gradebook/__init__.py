"""Transactional grade records and per-student gradebook totals.

Public API
----------
GradebookAggregator
    Sole writer of grade records and gradebook entries.
AggregatorConfig
    Retry and size limits, loadable from the environment.
GradeMutation
    Before/after view of a committed grade change.
RecomputeResult
    Drift report produced by :meth:`GradebookAggregator.recompute_student`.
run_in_transaction
    Optimistic transaction runner shared with coursework flows.

Example:
>>> aggregator = GradebookAggregator(session_factory)
>>> result = await aggregator.recompute_student(
...     "cs101", "student-a", actor=Actor(uid="ops", role="admin")
... )
>>> result.drift_flagged
False

"""

from gradeledger.gradebook.config import AggregatorConfig
from gradeledger.gradebook.errors import (
    GradeContentionError,
    GradeNotFoundError,
    GradeValidationError,
    GradeValidationReason,
)
from gradeledger.gradebook.observability import (
    ErrorCategory,
    GradebookEventLogger,
    GradebookEventType,
    categorize_error,
)
from gradeledger.gradebook.service import (
    Actor,
    GradebookAggregator,
    GradeMutation,
    GradeRequest,
    GradeState,
    RecomputeResult,
)
from gradeledger.gradebook.storage import (
    AttemptStatus,
    Course,
    GradebookEntry,
    GradeRecord,
    GradeSource,
    SourceType,
    Submission,
    TestAttempt,
    grade_record_id,
    init_gradebook_storage,
)
from gradeledger.gradebook.transaction import RETRYABLE_ERRORS, run_in_transaction

__all__ = [
    "RETRYABLE_ERRORS",
    "Actor",
    "AggregatorConfig",
    "AttemptStatus",
    "Course",
    "ErrorCategory",
    "GradeContentionError",
    "GradeMutation",
    "GradeNotFoundError",
    "GradeRecord",
    "GradeRequest",
    "GradeSource",
    "GradeState",
    "GradeValidationError",
    "GradeValidationReason",
    "GradebookAggregator",
    "GradebookEntry",
    "GradebookEventLogger",
    "GradebookEventType",
    "RecomputeResult",
    "SourceType",
    "Submission",
    "TestAttempt",
    "categorize_error",
    "grade_record_id",
    "init_gradebook_storage",
    "run_in_transaction",
]
