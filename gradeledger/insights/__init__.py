"""Read-only insight analysis over the domain event ledger.

Public API
----------
analyze
    Pure function turning a window of events into scored insights.
encode_insights / decode_insights
    Deterministic JSON wire form of insights.
AnalyzerConfig
    Named, overridable detector thresholds.
DEFAULT_DETECTORS
    The four built-in detector strategies, in output order.
normalize_for_display
    Consumer-side rounding and informational-only labelling.

"""

from gradeledger.insights.analyzer import (
    DEFAULT_DETECTORS,
    analyze,
    build_window,
    decode_insights,
    encode_insights,
)
from gradeledger.insights.config import AnalyzerConfig
from gradeledger.insights.detectors import (
    AnalysisWindow,
    Detector,
    GradebookDriftDetector,
    LateSubmissionPatternDetector,
    TestAttemptBurstDetector,
    TestAttemptDropoffDetector,
    clamp01,
)
from gradeledger.insights.models import (
    CourseScope,
    Insight,
    InsightType,
    Scope,
    UserScope,
)
from gradeledger.insights.presentation import (
    INFORMATIONAL_CUTOFF,
    INFORMATIONAL_PREFIX,
    actionable,
    is_informational,
    normalize_for_display,
)

__all__ = [
    "DEFAULT_DETECTORS",
    "INFORMATIONAL_CUTOFF",
    "INFORMATIONAL_PREFIX",
    "AnalysisWindow",
    "AnalyzerConfig",
    "CourseScope",
    "Detector",
    "GradebookDriftDetector",
    "Insight",
    "InsightType",
    "LateSubmissionPatternDetector",
    "Scope",
    "TestAttemptBurstDetector",
    "TestAttemptDropoffDetector",
    "UserScope",
    "actionable",
    "analyze",
    "build_window",
    "clamp01",
    "decode_insights",
    "encode_insights",
    "is_informational",
    "normalize_for_display",
]
