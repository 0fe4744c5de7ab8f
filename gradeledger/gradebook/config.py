"""Configuration for the gradebook aggregator.

Usage
-----
>>> config = AggregatorConfig()
>>> config.max_attempts
5

Values can be overridden from the environment:

>>> import os
>>> os.environ["GRADELEDGER_TX_MAX_ATTEMPTS"] = "8"
>>> AggregatorConfig.from_env().max_attempts
8

"""

from __future__ import annotations

import dataclasses as dc

from gradeledger.common.env import parse_positive_int


@dc.dataclass(frozen=True, slots=True)
class AggregatorConfig:
    """Limits applied by :class:`GradebookAggregator`.

    Attributes
    ----------
    max_attempts
        Transaction attempts before a conflict is surfaced as
        ``GradeContentionError``. The first attempt counts.
    max_feedback_chars
        Longest feedback accepted after sanitising.
    max_grades_scan
        Most grade records a single recompute will sum.

    """

    max_attempts: int = 5
    max_feedback_chars: int = 20_000
    max_grades_scan: int = 1_000

    @classmethod
    def from_env(cls) -> AggregatorConfig:
        """Create configuration from environment variables.

        Reads ``GRADELEDGER_TX_MAX_ATTEMPTS``,
        ``GRADELEDGER_MAX_FEEDBACK_CHARS`` and ``GRADELEDGER_MAX_GRADES_SCAN``;
        each must be a positive integer when set.

        Raises
        ------
        ValueError
            If a variable is set to anything but a positive integer.

        """
        return cls(
            max_attempts=parse_positive_int("GRADELEDGER_TX_MAX_ATTEMPTS", 5),
            max_feedback_chars=parse_positive_int(
                "GRADELEDGER_MAX_FEEDBACK_CHARS", 20_000
            ),
            max_grades_scan=parse_positive_int("GRADELEDGER_MAX_GRADES_SCAN", 1_000),
        )
