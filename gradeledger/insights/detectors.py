"""Stateless insight detectors over an immutable event window.

Each detector looks at the same :class:`AnalysisWindow` and scores its own
pattern independently; none of them sees another detector's output.
"""

from __future__ import annotations

import collections
import dataclasses as dc
import datetime as dt
import math
import typing as typ

from gradeledger.insights.models import CourseScope, Insight, InsightType, UserScope
from gradeledger.ledger.models import AggregateKind, EventType

if typ.TYPE_CHECKING:
    from gradeledger.insights.config import AnalyzerConfig
    from gradeledger.ledger.models import DomainEvent


def clamp01(value: float) -> float:
    """Clamp ``value`` into ``[0, 1]``; non-finite input scores zero."""
    if not math.isfinite(value):
        return 0.0
    return max(0.0, min(1.0, value))


def payload_str(event: DomainEvent, key: str) -> str | None:
    """Return a non-empty string payload field, else ``None``."""
    value = event.payload.get(key)
    if isinstance(value, str) and value:
        return value
    return None


def payload_number(event: DomainEvent, key: str) -> float | None:
    """Return a finite numeric payload field, else ``None``."""
    value = event.payload.get(key)
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    number = float(value)
    return number if math.isfinite(number) else None


def evidence_ids(
    events: typ.Iterable[DomainEvent], cap: int | None = None
) -> tuple[str, ...]:
    """Collect the event ids of ``events``, keeping at most ``cap``."""
    refs = [event.event_id for event in events if event.event_id]
    return tuple(refs if cap is None else refs[:cap])


@dc.dataclass(frozen=True, slots=True)
class AnalysisWindow:
    """Chronological, bounded, validated events as of ``now``."""

    events: tuple[DomainEvent, ...]
    now: dt.datetime
    config: AnalyzerConfig

    def of_type(self, event_type: str) -> list[DomainEvent]:
        """Return the window's events of one type, oldest first."""
        return [event for event in self.events if event.type == event_type]


class Detector(typ.Protocol):
    """A pattern detector producing zero or more insights."""

    insight_type: str

    def detect(self, window: AnalysisWindow) -> list[Insight]:
        """Return insights for ``window`` in a deterministic order."""
        ...


class TestAttemptBurstDetector:
    """Flag courses whose densest window of attempt starts looks like a spike."""

    __test__ = False
    insight_type = InsightType.TEST_ATTEMPT_BURST.value

    def detect(self, window: AnalysisWindow) -> list[Insight]:
        """Slide a fixed-width window over each course's attempt starts."""
        config = window.config
        by_course: dict[str, list[DomainEvent]] = collections.defaultdict(list)
        for event in window.of_type(EventType.TEST_ATTEMPT_STARTED):
            by_course[event.course_id].append(event)

        insights: list[Insight] = []
        for course_id in sorted(by_course):
            starts = by_course[course_id]
            if len(starts) < config.burst_min_events:
                continue

            best_count = 0
            best_start = 0
            end = 0
            for start, event in enumerate(starts):
                limit = event.occurred_at + config.burst_window
                end = max(end, start)
                while end < len(starts) and starts[end].occurred_at <= limit:
                    end += 1
                if end - start > best_count:
                    best_count = end - start
                    best_start = start

            if best_count < config.burst_threshold:
                continue

            densest = starts[best_start : best_start + best_count]
            confidence = clamp01(
                0.55 + min(0.35, 0.02 * (best_count - config.burst_threshold))
            )
            insights.append(
                Insight(
                    insight_type=self.insight_type,
                    scope=CourseScope(course_id=course_id),
                    why_generated=(
                        "Detected high volume of test attempt starts within "
                        f"{config.burst_window_minutes} minutes "
                        f"(maxInWindow={best_count}). This can indicate load "
                        "spikes and degraded availability risk."
                    ),
                    evidence_refs=evidence_ids(densest, config.evidence_cap),
                    confidence=confidence,
                    invalidation_conditions=(
                        "If the burst is expected (for example a scheduled exam "
                        "start) and infrastructure error rates remain normal, "
                        "this risk may be overestimated."
                    ),
                )
            )
        return insights


class LateSubmissionPatternDetector:
    """Flag students who repeatedly submit late in the same course."""

    insight_type = InsightType.LATE_SUBMISSION_PATTERN.value

    def detect(self, window: AnalysisWindow) -> list[Insight]:
        """Count recent ``submission.late`` events per (course, student)."""
        config = window.config
        cutoff = window.now - config.late_window
        by_student: dict[tuple[str, str], list[DomainEvent]] = (
            collections.defaultdict(list)
        )
        for event in window.of_type(EventType.SUBMISSION_LATE):
            student_id = payload_str(event, "studentId")
            if student_id is None or event.occurred_at < cutoff:
                continue
            by_student[(event.course_id, student_id)].append(event)

        insights: list[Insight] = []
        for course_id, student_id in sorted(by_student):
            lates = by_student[(course_id, student_id)]
            count = len(lates)
            if count < config.late_repeat_min:
                continue

            age = window.now - lates[-1].occurred_at
            recency = max(0.0, 1.0 - age / config.late_window)
            confidence = clamp01(
                0.45
                + min(0.4, 0.15 * (count - config.late_repeat_min))
                + 0.1 * recency
            )
            hours = [
                value
                for value in (payload_number(e, "lateByHours") for e in lates)
                if value is not None
            ]
            average = f"{sum(hours) / len(hours):.1f}" if hours else "unknown"
            insights.append(
                Insight(
                    insight_type=self.insight_type,
                    scope=UserScope(user_id=student_id, course_id=course_id),
                    why_generated=(
                        "Multiple late submission signals detected "
                        f"(count={count}, avgLateHours~{average}) in the last "
                        f"{config.late_window_days} days. Pattern may indicate "
                        "workload overload or disengagement risk."
                    ),
                    evidence_refs=evidence_ids(lates),
                    confidence=confidence,
                    invalidation_conditions=(
                        "On-time submission of the student's next assignment in "
                        "this course, or accommodations and extended deadlines "
                        "not visible in events, would invalidate this pattern."
                    ),
                )
            )
        return insights


class GradebookDriftDetector:
    """Surface recompute passes that found the live gradebook out of step."""

    insight_type = InsightType.GRADEBOOK_DRIFT.value

    def detect(self, window: AnalysisWindow) -> list[Insight]:
        """Emit one insight per recompute event reporting a non-zero delta."""
        insights: list[Insight] = []
        for event in window.of_type(EventType.GRADEBOOK_STUDENT_RECOMPUTED):
            student_id = payload_str(event, "studentId")
            if student_id is None:
                continue
            delta_score = payload_number(event, "deltaTotalScore")
            delta_possible = payload_number(event, "deltaTotalPossible")
            magnitude = max(abs(delta_score or 0.0), abs(delta_possible or 0.0))
            if delta_score is None and delta_possible is None:
                if event.payload.get("driftFlagged") is not True:
                    continue
            elif magnitude == 0:
                continue

            insights.append(
                Insight(
                    insight_type=self.insight_type,
                    scope=UserScope(user_id=student_id, course_id=event.course_id),
                    why_generated=(
                        "Gradebook recompute found the live totals out of step "
                        f"(deltaTotalScore={_fmt(delta_score)}, "
                        f"deltaTotalPossible={_fmt(delta_possible)}). This can "
                        "indicate prior inconsistency between grades and the "
                        "gradebook aggregate."
                    ),
                    evidence_refs=evidence_ids([event]),
                    confidence=clamp01(0.6 + min(0.25, magnitude / 40)),
                    invalidation_conditions=(
                        "A later recompute for this student showing zero delta "
                        "with stable totals, or a legitimate grade added outside "
                        "the ledger, would reduce this concern."
                    ),
                )
            )
        return insights


def _fmt(value: float | None) -> str:
    return "unknown" if value is None else f"{value:g}"


def _attempt_key(event: DomainEvent) -> tuple[str, str] | None:
    attempt_id = payload_str(event, "attemptId")
    if attempt_id is None and event.aggregate.kind == AggregateKind.ATTEMPT:
        attempt_id = event.aggregate.id or None
    if attempt_id is None:
        return None
    return (event.course_id, attempt_id)


class TestAttemptDropoffDetector:
    """Flag attempts started but never submitted within their allotted time."""

    __test__ = False
    insight_type = InsightType.TEST_ATTEMPT_DROPOFF.value

    def _elapsed_starts(
        self, window: AnalysisWindow
    ) -> tuple[list[DomainEvent], list[DomainEvent]]:
        """Split starts whose time has run out into (elapsed, stale)."""
        submitted = {
            key
            for event in window.of_type(EventType.TEST_ATTEMPT_SUBMITTED)
            if (key := _attempt_key(event)) is not None
        }
        starts: dict[tuple[str, str], DomainEvent] = {}
        for event in window.of_type(EventType.TEST_ATTEMPT_STARTED):
            key = _attempt_key(event)
            if key is not None:
                starts.setdefault(key, event)

        elapsed: list[DomainEvent] = []
        stale: list[DomainEvent] = []
        for key, event in starts.items():
            minutes = payload_number(event, "durationMinutes")
            allotted = (
                window.config.dropoff_default_duration
                if minutes is None or minutes <= 0
                else dt.timedelta(minutes=minutes)
            )
            if window.now - event.occurred_at <= allotted:
                continue
            elapsed.append(event)
            if key not in submitted:
                stale.append(event)
        return elapsed, stale

    def detect(self, window: AnalysisWindow) -> list[Insight]:
        """Score drop-off per course and per student by count and rate."""
        config = window.config
        elapsed, stale = self._elapsed_starts(window)

        elapsed_by_course = collections.Counter(e.course_id for e in elapsed)
        elapsed_by_user = collections.Counter(
            (e.course_id, e.actor_uid) for e in elapsed
        )
        stale_by_course: dict[str, list[DomainEvent]] = collections.defaultdict(list)
        stale_by_user: dict[tuple[str, str], list[DomainEvent]] = (
            collections.defaultdict(list)
        )
        for event in stale:
            stale_by_course[event.course_id].append(event)
            stale_by_user[(event.course_id, event.actor_uid)].append(event)

        insights: list[Insight] = []
        for course_id in sorted(stale_by_course):
            dropped = stale_by_course[course_id]
            count = len(dropped)
            if count < config.dropoff_course_min:
                continue
            rate = count / elapsed_by_course[course_id]
            base = 0.4 + min(0.35, 0.05 * (count - config.dropoff_course_min))
            insights.append(
                self._insight(
                    CourseScope(course_id=course_id),
                    dropped,
                    rate,
                    clamp01(base * (0.5 + 0.5 * rate)),
                    config,
                )
            )

        for course_id, user_id in sorted(stale_by_user):
            dropped = stale_by_user[(course_id, user_id)]
            count = len(dropped)
            if count < config.dropoff_student_min:
                continue
            rate = count / elapsed_by_user[(course_id, user_id)]
            base = 0.35 + min(0.3, 0.1 * (count - config.dropoff_student_min))
            insights.append(
                self._insight(
                    UserScope(user_id=user_id, course_id=course_id),
                    dropped,
                    rate,
                    clamp01(base * (0.5 + 0.5 * rate)),
                    config,
                )
            )
        return insights

    def _insight(
        self,
        scope: CourseScope | UserScope,
        dropped: list[DomainEvent],
        rate: float,
        confidence: float,
        config: AnalyzerConfig,
    ) -> Insight:
        return Insight(
            insight_type=self.insight_type,
            scope=scope,
            why_generated=(
                "Detected attempts started without a submission inside their "
                f"allotted time (count={len(dropped)}, dropoffRate={rate:.2f}). "
                "Could indicate UX friction, window confusion or platform "
                "reliability issues."
            ),
            evidence_refs=evidence_ids(dropped, config.evidence_cap),
            confidence=confidence,
            invalidation_conditions=(
                "Later events showing delayed submissions for these attempts, or "
                "a practice-only test with no submission requirement, would make "
                "this signal a false positive."
            ),
        )
