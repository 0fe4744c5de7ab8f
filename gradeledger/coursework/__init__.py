"""Coursework lifecycle services that feed the ledger and gradebook."""

from gradeledger.coursework.attempts import (
    UNTIMED_ATTEMPT_WINDOW,
    AttemptStarted,
    AttemptSubmitted,
    TestAttemptLedger,
    attempt_identifier,
)
from gradeledger.coursework.errors import (
    AttemptStateError,
    AttemptStateReason,
    LateSubmissionRejectedError,
)
from gradeledger.coursework.submissions import SubmissionReceipt, SubmissionService

__all__ = [
    "UNTIMED_ATTEMPT_WINDOW",
    "AttemptStarted",
    "AttemptStateError",
    "AttemptStateReason",
    "AttemptSubmitted",
    "LateSubmissionRejectedError",
    "SubmissionReceipt",
    "SubmissionService",
    "TestAttemptLedger",
    "attempt_identifier",
]
