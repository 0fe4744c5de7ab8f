"""Tests for the consumer-side insight display policy."""

from __future__ import annotations

from gradeledger.insights import (
    INFORMATIONAL_PREFIX,
    Insight,
    UserScope,
    actionable,
    is_informational,
    normalize_for_display,
)


def _insight(confidence: float, why: str = "Pattern found.") -> Insight:
    return Insight(
        insight_type="risk.test_attempt_dropoff",
        scope=UserScope(user_id="u_student_a", course_id="course_cs101"),
        why_generated=why,
        evidence_refs=("e1",),
        confidence=confidence,
        invalidation_conditions="Later submission.",
    )


def test_low_confidence_insights_are_labelled() -> None:
    """Insights below the cutoff are prefixed and rounded."""
    shown = normalize_for_display([_insight(0.35123), _insight(0.61789)])

    assert shown[0].why_generated == f"{INFORMATIONAL_PREFIX}Pattern found."
    assert shown[0].confidence == 0.35
    assert shown[1].why_generated == "Pattern found."
    assert shown[1].confidence == 0.62


def test_labelling_is_idempotent() -> None:
    """Normalising twice does not double the prefix."""
    once = normalize_for_display([_insight(0.2)])

    assert normalize_for_display(once) == once


def test_cutoff_uses_rounded_confidence() -> None:
    """A confidence rounding up to the cutoff is not informational."""
    assert is_informational(_insight(0.394)) is True
    assert is_informational(_insight(0.396)) is False


def test_actionable_drops_informational_insights() -> None:
    """Consumers that suppress informational insights can filter them."""
    kept = actionable([_insight(0.1), _insight(0.9)])

    assert [insight.confidence for insight in kept] == [0.9]


def test_analyzer_output_is_not_rewritten() -> None:
    """Normalising returns new insights and leaves the input unchanged."""
    original = _insight(0.2)

    normalize_for_display([original])

    assert original.why_generated == "Pattern found."
