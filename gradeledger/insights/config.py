"""Thresholds used by the insight detectors.

The defaults are the reference thresholds; override them per deployment
rather than editing detector code.

Usage
-----
>>> AnalyzerConfig().burst_threshold
15
>>> AnalyzerConfig(burst_threshold=20).burst_window
datetime.timedelta(seconds=3600)

"""

from __future__ import annotations

import dataclasses as dc
import datetime as dt

from gradeledger.common.env import parse_positive_int


@dc.dataclass(frozen=True, slots=True)
class AnalyzerConfig:
    """Named, overridable detector constants.

    Attributes
    ----------
    max_events
        Most recent events consumed per analysis run.
    evidence_cap
        Most evidence refs cited by course-scoped insights.
    burst_window_minutes
        Width of the sliding window for attempt bursts.
    burst_threshold
        Starts within one window that make a burst.
    burst_min_events
        Courses with fewer starts than this are not examined.
    late_repeat_min
        Late submissions per student that make a pattern.
    late_window_days
        Trailing window in which late submissions are counted.
    dropoff_default_minutes
        Allotted attempt time when a start event carries none.
    dropoff_course_min
        Stale attempts in a course that make a course insight.
    dropoff_student_min
        Stale attempts by one student that make a user insight.

    """

    max_events: int = 250
    evidence_cap: int = 25
    burst_window_minutes: int = 60
    burst_threshold: int = 15
    burst_min_events: int = 8
    late_repeat_min: int = 2
    late_window_days: int = 30
    dropoff_default_minutes: int = 12 * 60
    dropoff_course_min: int = 4
    dropoff_student_min: int = 3

    @property
    def burst_window(self) -> dt.timedelta:
        """Burst window as a timedelta."""
        return dt.timedelta(minutes=self.burst_window_minutes)

    @property
    def late_window(self) -> dt.timedelta:
        """Late-pattern window as a timedelta."""
        return dt.timedelta(days=self.late_window_days)

    @property
    def dropoff_default_duration(self) -> dt.timedelta:
        """Default allotted attempt time as a timedelta."""
        return dt.timedelta(minutes=self.dropoff_default_minutes)

    @classmethod
    def from_env(cls) -> AnalyzerConfig:
        """Create configuration from environment variables.

        Reads ``GRADELEDGER_MAX_EVENTS``, ``GRADELEDGER_BURST_THRESHOLD``,
        ``GRADELEDGER_BURST_WINDOW_MINUTES``, ``GRADELEDGER_LATE_REPEAT_MIN``
        and ``GRADELEDGER_LATE_WINDOW_DAYS``. Unset variables keep their
        defaults.

        Raises
        ------
        ValueError
            If a variable is set to anything but a positive integer.

        """
        defaults = cls()
        return cls(
            max_events=parse_positive_int(
                "GRADELEDGER_MAX_EVENTS", defaults.max_events
            ),
            burst_threshold=parse_positive_int(
                "GRADELEDGER_BURST_THRESHOLD", defaults.burst_threshold
            ),
            burst_window_minutes=parse_positive_int(
                "GRADELEDGER_BURST_WINDOW_MINUTES", defaults.burst_window_minutes
            ),
            late_repeat_min=parse_positive_int(
                "GRADELEDGER_LATE_REPEAT_MIN", defaults.late_repeat_min
            ),
            late_window_days=parse_positive_int(
                "GRADELEDGER_LATE_WINDOW_DAYS", defaults.late_window_days
            ),
        )
