"""Consumer-side display policy for insights.

The analyzer returns every insight it finds. Whether low-confidence ones are
labelled or hidden is decided here, by whoever renders them.
"""

from __future__ import annotations

import typing as typ

import msgspec

if typ.TYPE_CHECKING:
    from gradeledger.insights.models import Insight

INFORMATIONAL_CUTOFF = 0.4
INFORMATIONAL_PREFIX = "INFORMATIONAL ONLY: "


def is_informational(
    insight: Insight, *, cutoff: float = INFORMATIONAL_CUTOFF
) -> bool:
    """Return True when ``insight`` scores below the display cutoff."""
    return round(insight.confidence, 2) < cutoff


def normalize_for_display(
    insights: typ.Iterable[Insight], *, cutoff: float = INFORMATIONAL_CUTOFF
) -> list[Insight]:
    """Round confidences to two places and label low-confidence insights.

    Labelling is idempotent: an insight already carrying the prefix is not
    prefixed again.
    """
    shown: list[Insight] = []
    for insight in insights:
        why = insight.why_generated
        if is_informational(insight, cutoff=cutoff) and not why.startswith(
            INFORMATIONAL_PREFIX
        ):
            why = f"{INFORMATIONAL_PREFIX}{why}"
        shown.append(
            msgspec.structs.replace(
                insight, confidence=round(insight.confidence, 2), why_generated=why
            )
        )
    return shown


def actionable(
    insights: typ.Iterable[Insight], *, cutoff: float = INFORMATIONAL_CUTOFF
) -> list[Insight]:
    """Drop informational-only insights for consumers that suppress them."""
    return [
        insight
        for insight in insights
        if not is_informational(insight, cutoff=cutoff)
    ]
