"""Tests for the shared clock helpers."""

from __future__ import annotations

import datetime as dt

import pytest

from gradeledger.common.time import is_aware, utcnow

TOKYO = dt.timezone(dt.timedelta(hours=9))


def test_utcnow_is_aware_utc() -> None:
    """utcnow carries the UTC zone."""
    now = utcnow()

    assert is_aware(now)
    assert now.utcoffset() == dt.timedelta(0)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (dt.datetime(2025, 3, 10, 12, 0, tzinfo=dt.UTC), True),
        (dt.datetime(2025, 3, 10, 12, 0, tzinfo=TOKYO), True),
        (dt.datetime(2025, 3, 10, 12, 0), False),  # noqa: DTZ001
    ],
)
def test_is_aware(value: dt.datetime, expected: bool) -> None:  # noqa: FBT001
    """is_aware reports whether a timestamp has a zone; it never coerces."""
    original = value.replace()

    assert is_aware(value) is expected
    assert value == original
