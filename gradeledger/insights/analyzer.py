"""Read-only analysis of ledger events into advisory insights.

:func:`analyze` is a pure function of its inputs: it performs no I/O apart
from diagnostic logging, never mutates what it is given and returns the same
insights, in the same order, for the same events and ``now``.

Usage
-----
>>> from gradeledger.insights import analyze, encode_insights
>>> insights = analyze(events, now=dt.datetime.now(dt.UTC))
>>> encode_insights(insights)
b'[{"insightType":...}]'

"""

from __future__ import annotations

import typing as typ

import msgspec

from gradeledger.common.time import is_aware
from gradeledger.insights.config import AnalyzerConfig
from gradeledger.insights.detectors import (
    AnalysisWindow,
    Detector,
    GradebookDriftDetector,
    LateSubmissionPatternDetector,
    TestAttemptBurstDetector,
    TestAttemptDropoffDetector,
)
from gradeledger.insights.models import Insight
from gradeledger.ledger.errors import TimezoneAwareRequiredError
from gradeledger.ledger.models import DomainEvent, decode_events
from gradeledger.logging import get_logger, log_debug, log_warning

if typ.TYPE_CHECKING:
    import datetime as dt

logger = get_logger(__name__)

DEFAULT_DETECTORS: tuple[Detector, ...] = (
    TestAttemptBurstDetector(),
    LateSubmissionPatternDetector(),
    GradebookDriftDetector(),
    TestAttemptDropoffDetector(),
)


def _coerce(item: object) -> DomainEvent | None:
    if isinstance(item, DomainEvent):
        return item
    decoded = decode_events([item])
    return decoded[0] if decoded else None


def build_window(
    events: typ.Iterable[object],
    now: dt.datetime,
    *,
    config: AnalyzerConfig,
) -> AnalysisWindow:
    """Validate, order and bound ``events`` as they stood at ``now``.

    Items may be :class:`DomainEvent` structs, wire mappings or JSON bytes.
    Undecodable items, naive timestamps and events after ``now`` are skipped
    one by one; the most recent ``config.max_events`` survivors are kept.
    """
    if not is_aware(now):
        raise TimezoneAwareRequiredError("now")

    accepted: list[DomainEvent] = []
    for index, item in enumerate(events):
        event = _coerce(item)
        if event is None:
            continue
        if not is_aware(event.occurred_at):
            log_warning(
                logger,
                "Skipping event #%d (%s): occurredAt is not timezone aware",
                index,
                event.type,
            )
            continue
        if event.occurred_at > now:
            log_debug(logger, "Skipping event #%d: occurs after analysis time", index)
            continue
        accepted.append(event)

    accepted.sort(key=lambda event: (event.occurred_at, event.event_id or ""))
    bounded = accepted[-config.max_events :] if config.max_events else []
    return AnalysisWindow(events=tuple(bounded), now=now, config=config)


def analyze(
    events: typ.Iterable[object],
    now: dt.datetime,
    *,
    config: AnalyzerConfig | None = None,
    detectors: typ.Sequence[Detector] | None = None,
) -> list[Insight]:
    """Run every detector over one immutable window of ledger events.

    Parameters
    ----------
    events
        Ledger events in any order; see :func:`build_window`.
    now
        Timezone-aware analysis instant.
    config
        Detector thresholds; defaults to :class:`AnalyzerConfig`.
    detectors
        Detector strategies to run, in output order.

    Returns
    -------
    list[Insight]
        Insights in detector order; each cites at least one event.

    """
    window = build_window(events, now, config=config or AnalyzerConfig())
    insights: list[Insight] = []
    for detector in detectors if detectors is not None else DEFAULT_DETECTORS:
        found = [
            insight for insight in detector.detect(window) if insight.evidence_refs
        ]
        log_debug(
            logger,
            "Detector %s produced %d insight(s)",
            detector.insight_type,
            len(found),
        )
        insights.extend(found)
    return insights


def encode_insights(insights: typ.Sequence[Insight]) -> bytes:
    """Encode insights to their camelCase JSON wire form."""
    return msgspec.json.encode(list(insights))


def decode_insights(data: bytes | str) -> list[Insight]:
    """Decode insights previously produced by :func:`encode_insights`."""
    return msgspec.json.decode(data, type=list[Insight])
