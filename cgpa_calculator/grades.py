import math
from typing import List, Tuple

from .config import MAX_GRADE_POINT, MIN_GRADE_POINT
from .errors import InvalidGradeError

# ------------------------
# Grade scale (4.0)
# ------------------------

GRADE_POINTS = {
    "A+": 4.0,
    "A": 4.0,
    "A-": 3.7,
    "B+": 3.3,
    "B": 3.0,
    "B-": 2.7,
    "C+": 2.3,
    "C": 2.0,
    "C-": 1.7,
    "D+": 1.3,
    "D": 1.0,
    "F": 0.0,
}

# (minimum CGPA, letter), highest band first
LETTER_BANDS: List[Tuple[float, str]] = [
    (4.0, "A"),
    (3.7, "A-"),
    (3.3, "B+"),
    (3.0, "B"),
    (2.7, "B-"),
    (2.3, "C+"),
    (2.0, "C"),
    (1.7, "C-"),
    (1.3, "D+"),
    (1.0, "D"),
]


def _parse_numeric_grade(token: str):
    # float() would accept "0_4"
    if "_" in token:
        return None
    try:
        value = float(token)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    if MIN_GRADE_POINT <= value <= MAX_GRADE_POINT:
        return value
    return None


def resolve_grade_point(token: str) -> float:
    """
    Map a grade token to a grade point on the 4.0 scale.

    Numeric tokens within [0.0, 4.0] are already grade points and pass
    through unchanged; anything else must be a letter grade from
    GRADE_POINTS. Raises InvalidGradeError otherwise.
    """
    normalised = str(token).strip().upper()

    numeric = _parse_numeric_grade(normalised)
    if numeric is not None:
        return numeric

    try:
        return GRADE_POINTS[normalised]
    except KeyError as exc:
        raise InvalidGradeError(normalised) from exc


def to_letter_grade(cgpa: float) -> str:
    for minimum, letter in LETTER_BANDS:
        if cgpa >= minimum:
            return letter
    return "F"
