"""Command-line entry points for simulation and ledger analysis.

Examples
--------
Simulate a week of activity and print the advisory report::

    gradeledger simulate --seed demo

Analyse the most recent events of one course in a SQLite ledger::

    gradeledger analyze --database-url sqlite+aiosqlite:///ledger.db \
        --course-id course_cs101

"""

from __future__ import annotations

import asyncio
import datetime as dt
import sys
import typing as typ

import msgspec
from cyclopts import App, Parameter
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from gradeledger.common.time import is_aware, utcnow
from gradeledger.insights import (
    AnalyzerConfig,
    analyze,
    encode_insights,
    normalize_for_display,
)
from gradeledger.ledger import DomainEvent, LedgerSnapshotReader
from gradeledger.logging import configure_logging_from_env, get_logger, log_info
from gradeledger.simulation import (
    DEFAULT_SEED,
    build_human_report,
    simulate_domain_events,
)

logger = get_logger(__name__)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///gradeledger.db"

app = App(
    name="gradeledger",
    help="Gradebook ledger analysis tools",
    version="0.1.0",
)


def _resolve_now(now: dt.datetime | None) -> dt.datetime:
    """Default to the current time; read naive input as UTC."""
    if now is None:
        return utcnow()
    if not is_aware(now):
        return now.replace(tzinfo=dt.UTC)
    return now


def _pretty_json(data: bytes) -> str:
    return msgspec.json.format(data, indent=2).decode("utf-8")


@app.command
def simulate(
    *,
    seed: typ.Annotated[
        str, Parameter(env_var="GRADELEDGER_SIM_SEED")
    ] = DEFAULT_SEED,
    now: dt.datetime | None = None,
    report: bool = True,
) -> int:
    """Analyse a seeded synthetic event stream.

    Prints the insights as JSON, then the human-readable report. Nothing is
    read from or written to any database.

    Args:
        seed: Seed string; identical seeds give identical output.
        now: Analysis instant (ISO 8601). Naive values are read as UTC.
        report: Print the advisory report after the JSON.

    Returns:
        Exit code (0 for success).

    """
    moment = _resolve_now(now)
    events = simulate_domain_events(moment, seed)
    insights = normalize_for_display(
        analyze(events, moment, config=AnalyzerConfig.from_env())
    )
    print(_pretty_json(encode_insights(insights)))
    if report:
        print()
        print(build_human_report(insights, events))
    return 0


async def _fetch_events(
    database_url: str, course_id: str | None, limit: int
) -> list[DomainEvent]:
    engine = create_async_engine(database_url)
    try:
        reader = LedgerSnapshotReader(
            async_sessionmaker(engine, expire_on_commit=False)
        )
        return await reader.fetch(course_id=course_id, limit=limit)
    finally:
        await engine.dispose()


@app.command(name="analyze")
def analyze_ledger(
    *,
    database_url: typ.Annotated[
        str, Parameter(env_var="GRADELEDGER_DATABASE_URL")
    ] = DEFAULT_DATABASE_URL,
    course_id: str | None = None,
    now: dt.datetime | None = None,
    raw: bool = False,
) -> int:
    """Analyse the most recent events in a ledger database.

    The ledger is only read. Insights are printed as JSON and never stored.

    Args:
        database_url: SQLAlchemy async URL of the ledger.
        course_id: Restrict analysis to one course.
        now: Analysis instant (ISO 8601). Naive values are read as UTC.
        raw: Print analyzer confidences without display normalisation.

    Returns:
        Exit code (0 for success).

    """
    config = AnalyzerConfig.from_env()
    moment = _resolve_now(now)
    events = asyncio.run(_fetch_events(database_url, course_id, config.max_events))
    insights = analyze(events, moment, config=config)
    log_info(
        logger,
        "Analysed %d event(s) into %d insight(s)",
        len(events),
        len(insights),
    )
    shown = insights if raw else normalize_for_display(insights)
    print(_pretty_json(encode_insights(shown)))
    return 0


def main() -> int:
    """Entry point for the CLI."""
    configure_logging_from_env(logger)
    return app()


if __name__ == "__main__":
    sys.exit(main())
