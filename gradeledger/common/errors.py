"""Root of the gradeledger exception hierarchy."""

from __future__ import annotations


class GradeLedgerError(Exception):
    """Base class for errors raised by gradeledger services.

    Attributes
    ----------
    retryable
        ``True`` when the caller may safely replay the whole operation.

    """

    retryable: bool = False
