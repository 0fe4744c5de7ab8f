"""Deterministic event simulation for development and tests."""

from gradeledger.simulation.report import build_human_report
from gradeledger.simulation.simulator import (
    COURSES,
    DEFAULT_SEED,
    STUDENTS,
    SimulatedCourse,
    seeded_random,
    simulate_domain_events,
)

__all__ = [
    "COURSES",
    "DEFAULT_SEED",
    "STUDENTS",
    "SimulatedCourse",
    "build_human_report",
    "seeded_random",
    "simulate_domain_events",
]
