"""Behavioural coverage for gradebook consistency."""

from __future__ import annotations

import asyncio
import typing as typ

import pytest
from pytest_bdd import given, scenario, then, when

from gradeledger.gradebook import (
    GradebookAggregator,
    GradebookEntry,
    GradeRecord,
    RecomputeResult,
)
from gradeledger.ledger import EventType
from tests.helpers.builders import (
    COURSE_ID,
    INSTRUCTOR,
    load_entry,
    load_events,
    seed_course,
    seed_source,
)

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

STUDENT = "u_student_a"


class GradebookContext(typ.TypedDict, total=False):
    """Shared mutable scenario state."""

    session_factory: async_sessionmaker[AsyncSession]
    aggregator: GradebookAggregator
    recompute: RecomputeResult


@scenario(
    "../gradebook_consistency.feature",
    "Regrading keeps totals and revisions consistent",
)
def test_regrading_keeps_totals_consistent() -> None:
    """Wrap the pytest-bdd scenario."""


@scenario(
    "../gradebook_consistency.feature",
    "A drifted gradebook entry is flagged and repaired",
)
def test_drifted_entry_is_repaired() -> None:
    """Wrap the pytest-bdd scenario."""


@pytest.fixture
def gradebook_context(
    session_factory: async_sessionmaker[AsyncSession],
) -> GradebookContext:
    """Provide a fresh store and aggregator for the scenario."""
    return {
        "session_factory": session_factory,
        "aggregator": GradebookAggregator(session_factory),
    }


def _grade(context: GradebookContext, source_id: str, score: float) -> None:
    asyncio.run(
        context["aggregator"].set_grade(
            COURSE_ID, "assignment", source_id, STUDENT, score, 100, actor=INSTRUCTOR
        )
    )


@given("a course with two 100 point assignments")
def given_course(gradebook_context: GradebookContext) -> None:
    """Seed the course and its assignments."""
    session_factory = gradebook_context["session_factory"]

    async def _seed() -> None:
        await seed_course(session_factory)
        await seed_source(session_factory, "hw1")
        await seed_source(session_factory, "hw2")

    asyncio.run(_seed())


@given("the student has been graded 40 on hw1")
def given_graded(gradebook_context: GradebookContext) -> None:
    """Record an initial grade."""
    _grade(gradebook_context, "hw1", 40)


@given("the student's live total score was corrupted to 33")
def given_corrupted(gradebook_context: GradebookContext) -> None:
    """Write a total that disagrees with the grade records."""
    session_factory = gradebook_context["session_factory"]

    async def _corrupt() -> None:
        async with session_factory() as session, session.begin():
            entry = await session.get(GradebookEntry, (COURSE_ID, STUDENT))
            assert entry is not None, "student should already have an entry"
            entry.total_score = 33

    asyncio.run(_corrupt())


@when("the instructor grades hw1 at 40, hw2 at 70 and regrades hw1 at 55")
def when_grading(gradebook_context: GradebookContext) -> None:
    """Apply a sequence of grades."""
    for source_id, score in (("hw1", 40), ("hw2", 70), ("hw1", 55)):
        _grade(gradebook_context, source_id, score)


@when("the instructor recomputes the student with repair")
def when_recompute(gradebook_context: GradebookContext) -> None:
    """Run a repairing recompute."""
    gradebook_context["recompute"] = asyncio.run(
        gradebook_context["aggregator"].recompute_student(
            COURSE_ID, STUDENT, actor=INSTRUCTOR, reason="audit", repair=True
        )
    )


@then("the student's gradebook totals are 125 out of 200")
def then_totals_after_regrade(gradebook_context: GradebookContext) -> None:
    """Totals equal the sum of current grades."""
    _assert_totals(gradebook_context, 125, 200)


@then("the student's gradebook totals are 40 out of 100")
def then_totals_after_repair(gradebook_context: GradebookContext) -> None:
    """Repair restores totals to the recomputed values."""
    _assert_totals(gradebook_context, 40, 100)


def _assert_totals(context: GradebookContext, score: float, possible: float) -> None:
    entry = asyncio.run(load_entry(context["session_factory"], STUDENT))
    assert entry is not None, "gradebook entry missing"
    assert (entry.total_score, entry.total_possible) == (score, possible), (
        f"expected totals {score}/{possible}, "
        f"got {entry.total_score}/{entry.total_possible}"
    )


@then("hw1 is at grade revision 2")
def then_revision(gradebook_context: GradebookContext) -> None:
    """Each regrade increments the revision by one."""
    session_factory = gradebook_context["session_factory"]

    async def _load() -> GradeRecord | None:
        async with session_factory() as session:
            return await session.get(
                GradeRecord, (COURSE_ID, f"assignment_hw1_{STUDENT}")
            )

    record = asyncio.run(_load())
    assert record is not None, "grade record missing"
    assert record.grade_revision == 2


@then("the ledger holds 3 grade mutation events")
def then_grade_events(gradebook_context: GradebookContext) -> None:
    """One event per committed mutation."""
    events = asyncio.run(
        load_events(gradebook_context["session_factory"], EventType.GRADE_MUTATED)
    )
    assert len(events) == 3, f"expected 3 grade.mutated events, got {len(events)}"


@then("the recompute reports a score delta of 7")
def then_delta(gradebook_context: GradebookContext) -> None:
    """The recompute compares record sums to the live entry."""
    result = gradebook_context["recompute"]
    assert result.delta_total_score == 7
    assert result.drift_flagged is True
    assert result.repaired is True


@then("the ledger holds a flagged recompute event")
def then_recompute_event(gradebook_context: GradebookContext) -> None:
    """The recompute is recorded with its deltas."""
    events = asyncio.run(
        load_events(
            gradebook_context["session_factory"],
            EventType.GRADEBOOK_STUDENT_RECOMPUTED,
        )
    )
    assert len(events) == 1
    assert events[0].payload["driftFlagged"] is True
    assert events[0].payload["reason"] == "audit"
