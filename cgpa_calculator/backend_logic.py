import asyncio
import logging
import math
import unicodedata
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set, Tuple, Union

import numpy as np
import pandas as pd

from .config import BULK_ENTRY_NAME, MAX_GRADE_POINT, MIN_GRADE_POINT, RECALCULATE_DELAY
from .errors import EmptyResultError, InvalidDataError, InvalidGradeError
from .grades import resolve_grade_point
from .io_csv import RawRow, parse_credits, parse_rows

logger = logging.getLogger(__name__)


@dataclass
class CourseEntry:
    name: str
    grade: str
    # Holds whatever the user typed until the next recalculate validates it
    credits: Union[float, str]
    grade_point: float
    bulk: bool = False


@dataclass
class Result:
    cgpa: float
    total_credits: float
    courses: List[CourseEntry] = field(default_factory=list)


# ------------------------
# Core logic
# ------------------------

def weighted_mean(gc: Iterable[Tuple[float, float]]) -> Tuple[float, float]:
    """
    gc: iterable of (grade_point, credits)
    returns: (credit-weighted mean grade point, total credits)

    The mean is 0.0 when there are no credits.
    """
    arr = np.asarray(list(gc), dtype=float).reshape(-1, 2)
    if arr.size == 0:
        return 0.0, 0.0

    points = arr[:, 0]
    credits = arr[:, 1]
    total_credits = float(credits.sum())
    if total_credits == 0:
        return 0.0, 0.0

    return float(np.dot(points, credits) / total_credits), total_credits


def _collation_key(name: str):
    # accents folded away; punctuation < digits < letters
    folded = "".join(
        c for c in unicodedata.normalize("NFKD", name) if not unicodedata.combining(c)
    ).casefold()
    return tuple((0 if not c.isalnum() else 1 if c.isdigit() else 2, c) for c in folded)


def course_sort_key(name: str):
    # lowercase before uppercase on ties
    return _collation_key(name), name.casefold(), name.swapcase()


def aggregate(rows: Iterable[RawRow]) -> Result:
    """
    Resolve every row's grade, keep the best attempt per course name and
    compute the credit-weighted CGPA over what is left.

    A later duplicate only replaces an earlier one when its grade point is
    strictly higher, so ties keep the first row.
    """
    best: Dict[str, CourseEntry] = {}

    for row in rows:
        try:
            grade_point = resolve_grade_point(row.grade)
        except InvalidGradeError as exc:
            raise InvalidGradeError(row.grade, line=row.line, course=row.name) from exc

        existing = best.get(row.name)
        if existing is None or grade_point > existing.grade_point:
            best[row.name] = CourseEntry(
                name=row.name,
                grade=row.grade,
                credits=row.credits,
                grade_point=grade_point,
            )

    courses = sorted(best.values(), key=lambda c: course_sort_key(c.name))
    cgpa, total_credits = weighted_mean((c.grade_point, c.credits) for c in courses)

    if not courses or total_credits == 0:
        raise EmptyResultError("No valid courses found in the CSV")

    logger.info(f"Aggregated {len(courses)} courses: CGPA {cgpa:.2f} over {total_credits:g} credits")
    return Result(cgpa=cgpa, total_credits=total_credits, courses=courses)


def calculate_cgpa_from_csv(raw_text: str) -> Result:
    return aggregate(parse_rows(raw_text))


# ------------------------
# Editing session
# ------------------------

class EditSession:
    """
    Mutable course list behind the result table.

    Entries are addressed by position and never removed; exclusion is a
    soft delete tracked in ``excluded``. Edits only touch the raw fields,
    grade points and the aggregate are refreshed by ``recalculate``.
    """

    def __init__(self, courses: Optional[List[CourseEntry]] = None,
                 cgpa: float = 0.0, total_credits: float = 0.0):
        self.courses: List[CourseEntry] = list(courses or [])
        self.cgpa = cgpa
        self.total_credits = total_credits
        self.excluded: Set[int] = set()
        self.edited: Set[int] = set()
        self.errors: Dict[int, str] = {}

    @classmethod
    def from_result(cls, result: Result) -> "EditSession":
        return cls(
            courses=[replace(c) for c in result.courses],
            cgpa=result.cgpa,
            total_credits=result.total_credits,
        )

    @classmethod
    def manual(cls) -> "EditSession":
        return cls()

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.courses):
            raise IndexError(f"No course at position {index}")

    def edit(self, index: int, name: Optional[str] = None, grade: Optional[str] = None,
             credits: Optional[Union[float, str]] = None) -> None:
        self._check_index(index)
        entry = self.courses[index]

        if name is not None:
            entry.name = name
        if grade is not None:
            entry.grade = grade
            entry.bulk = False
        if credits is not None:
            entry.credits = credits

        self.edited.add(index)

    def add_course(self) -> None:
        self.courses.insert(0, CourseEntry(name="", grade="", credits=0.0, grade_point=0.0))

        # keep per-position state attached to the same entries
        self.excluded = {i + 1 for i in self.excluded}
        self.errors = {i + 1: msg for i, msg in self.errors.items()}
        self.edited = {i + 1 for i in self.edited} | {0}

    def add_bulk_entry(self, credits: Union[float, str], cgpa: Union[float, str]) -> int:
        """
        Append a block of credits already averaged at ``cgpa``.

        The CGPA is used as the grade point directly, so it never goes
        through letter-grade resolution. Returns the new entry's index.
        """
        parsed_credits = parse_credits(credits)
        if parsed_credits is None:
            raise InvalidDataError("Credits must be a positive number")

        cgpa_text = str(cgpa).strip()
        try:
            parsed_cgpa = math.nan if "_" in cgpa_text else float(cgpa_text)
        except ValueError:
            parsed_cgpa = math.nan
        if not MIN_GRADE_POINT <= parsed_cgpa <= MAX_GRADE_POINT:
            raise InvalidDataError("CGPA must be between 0 and 4.0")

        self.courses.append(CourseEntry(
            name=BULK_ENTRY_NAME,
            grade=f"{parsed_cgpa:.2f}",
            credits=parsed_credits,
            grade_point=parsed_cgpa,
            bulk=True,
        ))
        index = len(self.courses) - 1
        self.edited.add(index)
        return index

    def exclude(self, index: int) -> None:
        self._check_index(index)
        self.excluded.add(index)

    def visible_courses(self) -> Iterator[Tuple[int, CourseEntry]]:
        for idx, entry in enumerate(self.courses):
            if idx not in self.excluded:
                yield idx, entry

    def recalculate(self) -> Dict[int, str]:
        """
        Validate every included entry and, if all pass, recompute the CGPA.

        Failures are collected per position without stopping the scan. If
        anything failed the previous CGPA and credits stand and only the
        error map changes. Returns the error map (empty on success).
        """
        errors: Dict[int, str] = {}
        validated: List[Tuple[int, float, float]] = []

        for idx, entry in self.visible_courses():
            credits = parse_credits(entry.credits)
            if credits is None:
                errors[idx] = "Invalid credits"
                continue

            if entry.bulk:
                grade_point = entry.grade_point
            else:
                try:
                    grade_point = resolve_grade_point(entry.grade)
                except InvalidGradeError:
                    errors[idx] = "Invalid grade"
                    continue

            validated.append((idx, credits, grade_point))

        self.errors = errors
        if errors:
            logger.warning(f"Recalculate rejected: {len(errors)} invalid course(s) at {sorted(errors)}")
            return dict(errors)

        for idx, credits, grade_point in validated:
            self.courses[idx].credits = credits
            self.courses[idx].grade_point = grade_point

        self.cgpa, self.total_credits = weighted_mean((gp, c) for _, c, gp in validated)
        self.edited.clear()

        logger.info(f"Recalculated CGPA {self.cgpa:.2f} over {self.total_credits:g} credits")
        return {}

    def courses_frame(self) -> pd.DataFrame:
        records = []
        for idx, entry in self.visible_courses():
            credits = parse_credits(entry.credits) or 0.0
            records.append({
                "Course": entry.name,
                "Grade": entry.grade,
                "Credits": credits,
                "Points": round(entry.grade_point * credits, 1),
            })
        index = [idx for idx, _ in self.visible_courses()]
        return pd.DataFrame(records, index=index, columns=["Course", "Grade", "Credits", "Points"])


class RecalculateScheduler:
    """
    Runs ``session.recalculate()`` once, ``delay`` seconds after a request.

    There is at most one outstanding request: asking again cancels the
    pending callback and re-arms it, so the last request wins. The
    callback sees the session as it is when the timer fires.
    """

    def __init__(self, session: EditSession, delay: float = RECALCULATE_DELAY,
                 on_done: Optional[Callable[[Dict[int, str]], None]] = None):
        self.session = session
        self.delay = delay
        self.on_done = on_done
        self.last_errors: Optional[Dict[int, str]] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._future: Optional[asyncio.Future] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def request(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> asyncio.Future:
        """Schedule a recalculate; the returned future resolves to its error map."""
        if loop is None:
            loop = asyncio.get_running_loop()

        self.cancel()
        self._future = loop.create_future()
        self._handle = loop.call_later(self.delay, self._run)
        return self._future

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._future is not None and not self._future.done():
            self._future.cancel()
        self._future = None

    def _run(self) -> None:
        future = self._future
        self._handle = None
        self._future = None

        errors = self.session.recalculate()
        self.last_errors = errors
        if future is not None and not future.done():
            future.set_result(errors)
        if self.on_done is not None:
            self.on_done(errors)
