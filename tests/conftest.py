"""
Pytest configuration and shared fixtures.
"""

import pytest

from cgpa_calculator.backend_logic import EditSession, calculate_cgpa_from_csv


TWO_COURSE_CSV = "Course,Grade,Credits\nCS1,A,3\nCS2,B,4\n"


@pytest.fixture
def two_course_csv() -> str:
    return TWO_COURSE_CSV


@pytest.fixture
def two_course_session() -> EditSession:
    """Session seeded from CS1 (A, 3 credits) and CS2 (B, 4 credits)."""
    return EditSession.from_result(calculate_cgpa_from_csv(TWO_COURSE_CSV))
