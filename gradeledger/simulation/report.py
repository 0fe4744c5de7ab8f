"""Plain-text advisory report for simulated analysis runs."""

from __future__ import annotations

import typing as typ

from gradeledger.insights.models import CourseScope, InsightType
from gradeledger.insights.presentation import INFORMATIONAL_CUTOFF, is_informational

if typ.TYPE_CHECKING:
    from gradeledger.insights.models import Insight
    from gradeledger.ledger.models import DomainEvent

TOP_DETECTIONS = 6

_ADVISORY_ACTIONS: dict[str, str] = {
    InsightType.TEST_ATTEMPT_BURST: (
        "Verify scheduled exam timing against the burst; check latency and "
        "error budgets and scale ahead of the next window."
    ),
    InsightType.LATE_SUBMISSION_PATTERN: (
        "Staff review: consider outreach through existing human workflows and "
        "check whether accommodations apply."
    ),
    InsightType.GRADEBOOK_DRIFT: (
        "Staff audit: inspect recent grade mutations for the student, then run "
        "a targeted recompute with repair."
    ),
    InsightType.TEST_ATTEMPT_DROPOFF: (
        "Check whether students start but fail to submit (timeouts, confusion); "
        "review attempt expiry and server logs."
    ),
}
_FALLBACK_ACTION = "Review the evidence refs and confirm whether action is needed."


def _describe_scope(insight: Insight) -> str:
    scope = insight.scope
    if isinstance(scope, CourseScope):
        return f"course={scope.course_id}"
    return f"user={scope.user_id} course={scope.course_id}"


def build_human_report(
    insights: typ.Sequence[Insight], events: typ.Sequence[DomainEvent]
) -> str:
    """Render insights as an advisory report; nothing in it is acted upon."""
    lines = [
        "SIMULATED INSIGHT REPORT (DEV)",
        "",
        f"Simulated events analysed: {len(events)}",
        f"Insights generated: {len(insights)}",
    ]
    informational = [insight for insight in insights if is_informational(insight)]
    if informational:
        lines.append(
            f"Informational-only insights (confidence < {INFORMATIONAL_CUTOFF}): "
            f"{len(informational)}"
        )

    top = sorted(insights, key=lambda insight: -insight.confidence)[:TOP_DETECTIONS]
    lines.extend(["", "Key detections:"])
    for insight in top:
        tag = " (informational only)" if is_informational(insight) else ""
        lines.append(
            f"- {insight.insight_type} [{_describe_scope(insight)}] "
            f"conf={insight.confidence:.2f}{tag}"
        )

    lines.extend(["", "Recommended next actions (advisory only; no direct messaging):"])
    lines.extend(
        f"- {_ADVISORY_ACTIONS.get(insight.insight_type, _FALLBACK_ACTION)}"
        for insight in top
    )

    lines.extend(
        [
            "",
            "LIVE LEDGER BEHAVIOUR",
            "",
            "- Replace simulated events with a read-only ledger snapshot.",
            "- Run the same analysis; insights go to logs or a separate "
            "read-optimised store, never into grades or attempts.",
        ]
    )
    return "\n".join(lines)
