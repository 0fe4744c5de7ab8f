"""Insight value objects and their wire shape."""

from __future__ import annotations

import enum
import typing as typ

import msgspec


class InsightType(enum.StrEnum):
    """Insight kinds produced by the built-in detectors."""

    TEST_ATTEMPT_BURST = "overload_risk.test_attempt_burst"
    LATE_SUBMISSION_PATTERN = "risk.student_late_submission_pattern"
    GRADEBOOK_DRIFT = "integrity.gradebook_drift_flagged"
    TEST_ATTEMPT_DROPOFF = "risk.test_attempt_dropoff"


class CourseScope(
    msgspec.Struct,
    kw_only=True,
    frozen=True,
    tag="course",
    tag_field="type",
    rename="camel",
):
    """An insight about a whole course."""

    course_id: str


class UserScope(
    msgspec.Struct,
    kw_only=True,
    frozen=True,
    tag="user",
    tag_field="type",
    rename="camel",
):
    """An insight about one user within a course."""

    user_id: str
    course_id: str


Scope: typ.TypeAlias = CourseScope | UserScope


class Insight(msgspec.Struct, kw_only=True, frozen=True, rename="camel"):
    """Advisory, confidence-scored observation derived from ledger events.

    Insights are never authoritative: nothing in gradeledger reads them back
    into grades, attempts or gradebook state.

    Attributes
    ----------
    insight_type
        One of :class:`InsightType`, or a custom detector's type.
    scope
        Course or user the insight is about.
    why_generated
        Human-readable explanation including the measured values.
    evidence_refs
        Event ids the insight was derived from; never empty.
    confidence
        Score in ``[0, 1]``.
    invalidation_conditions
        What later evidence would make this insight moot.

    """

    insight_type: str
    scope: Scope
    why_generated: str
    evidence_refs: tuple[str, ...]
    confidence: float
    invalidation_conditions: str
