import asyncio

import pytest

from cgpa_calculator.backend_logic import EditSession, RecalculateScheduler, calculate_cgpa_from_csv
from cgpa_calculator.config import BULK_ENTRY_NAME
from cgpa_calculator.errors import InvalidDataError
from cgpa_calculator.io_csv import parse_rows


TWO_COURSE_CGPA = (4.0 * 3 + 3.0 * 4) / 7


class TestEditing:
    """Tests for deferred edits, additions and exclusions"""

    def test_from_result_copies_entries(self, two_course_csv):
        result = calculate_cgpa_from_csv(two_course_csv)
        session = EditSession.from_result(result)
        session.edit(0, grade="F")
        assert result.courses[0].grade == "A"

    def test_edit_does_not_recompute(self, two_course_session):
        two_course_session.edit(0, grade="F", credits="5")
        entry = two_course_session.courses[0]
        assert entry.grade == "F"
        assert entry.credits == "5"
        assert entry.grade_point == 4.0
        assert two_course_session.cgpa == pytest.approx(TWO_COURSE_CGPA)
        assert two_course_session.edited == {0}

    def test_edit_out_of_range(self, two_course_session):
        with pytest.raises(IndexError):
            two_course_session.edit(5, name="X")
        with pytest.raises(IndexError):
            two_course_session.exclude(-1)

    def test_add_course_inserts_blank_entry_at_front(self, two_course_session):
        two_course_session.add_course()
        first = two_course_session.courses[0]
        assert (first.name, first.grade, first.credits, first.grade_point) == ("", "", 0.0, 0.0)
        assert [c.name for c in two_course_session.courses[1:]] == ["CS1", "CS2"]
        assert 0 in two_course_session.edited

    def test_add_course_keeps_exclusions_on_same_entries(self, two_course_session):
        two_course_session.exclude(1)
        two_course_session.add_course()
        assert two_course_session.excluded == {2}
        assert two_course_session.courses[2].name == "CS2"

    def test_exclude_is_a_soft_delete(self, two_course_session):
        two_course_session.exclude(0)
        assert len(two_course_session.courses) == 2
        assert [idx for idx, _ in two_course_session.visible_courses()] == [1]

    def test_visible_courses_skip_excluded_in_count(self, two_course_session):
        two_course_session.add_bulk_entry(10, 3.0)
        two_course_session.exclude(0)
        assert sum(1 for _ in two_course_session.visible_courses()) == 2

    def test_exported_course_list_parses_back(self, two_course_session):
        two_course_session.edit(1, grade="C")
        two_course_session.exclude(0)
        two_course_session.recalculate()
        exported = two_course_session.courses_frame().to_csv(index=False)
        rows = parse_rows(exported)
        assert [(r.name, r.grade, r.credits) for r in rows] == [("CS2", "C", 4.0)]

    def test_courses_frame_skips_excluded(self, two_course_session):
        two_course_session.exclude(0)
        frame = two_course_session.courses_frame()
        assert list(frame.columns) == ["Course", "Grade", "Credits", "Points"]
        assert list(frame.index) == [1]
        assert frame.loc[1, "Points"] == pytest.approx(12.0)


class TestRecalculate:
    """Tests for validation and recomputation of the aggregate"""

    def test_invalid_grade_leaves_aggregate_unchanged(self, two_course_session):
        two_course_session.edit(1, grade="Z")
        errors = two_course_session.recalculate()
        assert errors == {1: "Invalid grade"}
        assert two_course_session.errors == {1: "Invalid grade"}
        assert two_course_session.cgpa == pytest.approx(TWO_COURSE_CGPA)
        assert two_course_session.total_credits == 7
        assert two_course_session.courses[1].grade_point == 3.0

    def test_all_failures_are_collected(self, two_course_session):
        two_course_session.edit(0, credits="abc")
        two_course_session.edit(1, grade="Q")
        assert two_course_session.recalculate() == {0: "Invalid credits", 1: "Invalid grade"}

    def test_valid_edit_is_applied(self, two_course_session):
        two_course_session.edit(1, grade="A", credits="1")
        assert two_course_session.recalculate() == {}
        assert two_course_session.cgpa == 4.0
        assert two_course_session.total_credits == 4
        assert two_course_session.courses[1].credits == 1.0
        assert two_course_session.edited == set()

    def test_errors_cleared_after_successful_recalculate(self, two_course_session):
        two_course_session.edit(1, grade="Z")
        two_course_session.recalculate()
        two_course_session.edit(1, grade="C")
        assert two_course_session.recalculate() == {}
        assert two_course_session.errors == {}
        assert two_course_session.cgpa == pytest.approx((4.0 * 3 + 2.0 * 4) / 7)

    def test_excluded_entry_does_not_count(self, two_course_session):
        two_course_session.exclude(1)
        assert two_course_session.recalculate() == {}
        assert two_course_session.cgpa == 4.0
        assert two_course_session.total_credits == 3

    def test_excluded_entry_is_not_validated(self, two_course_session):
        two_course_session.edit(1, grade="Z")
        two_course_session.exclude(1)
        assert two_course_session.recalculate() == {}
        assert two_course_session.total_credits == 3

    def test_new_blank_course_must_be_filled_in(self, two_course_session):
        two_course_session.add_course()
        assert two_course_session.recalculate() == {0: "Invalid credits"}

        two_course_session.edit(0, name="NEW", grade="B", credits="7")
        assert two_course_session.recalculate() == {}
        assert two_course_session.total_credits == 14
        assert two_course_session.cgpa == pytest.approx((4.0 * 3 + 3.0 * 4 + 3.0 * 7) / 14)

    def test_empty_manual_session(self):
        session = EditSession.manual()
        assert session.recalculate() == {}
        assert session.cgpa == 0.0
        assert session.total_credits == 0.0

    def test_everything_excluded_gives_zero(self, two_course_session):
        two_course_session.exclude(0)
        two_course_session.exclude(1)
        two_course_session.recalculate()
        assert (two_course_session.cgpa, two_course_session.total_credits) == (0.0, 0.0)


class TestBulkEntry:
    """Tests for pre-averaged bulk CGPA entries"""

    def test_bulk_entry_on_empty_session(self):
        session = EditSession.manual()
        idx = session.add_bulk_entry(10, 3.5)
        entry = session.courses[idx]
        assert entry.name == BULK_ENTRY_NAME
        assert entry.grade == "3.50"
        assert entry.grade_point == 3.5

        assert session.recalculate() == {}
        assert session.cgpa == 3.5
        assert session.total_credits == 10

    def test_bulk_entry_keeps_exact_grade_point(self):
        session = EditSession.manual()
        session.add_bulk_entry("20", "3.456")
        session.recalculate()
        assert session.cgpa == pytest.approx(3.456)

    def test_bulk_entry_is_appended(self, two_course_session):
        two_course_session.add_bulk_entry(30, 2.0)
        assert two_course_session.courses[-1].name == BULK_ENTRY_NAME
        two_course_session.recalculate()
        assert two_course_session.total_credits == 37

    def test_editing_bulk_grade_resolves_it_again(self):
        session = EditSession.manual()
        session.add_bulk_entry(10, 3.5)
        session.edit(0, grade="B")
        session.recalculate()
        assert session.cgpa == 3.0

    @pytest.mark.parametrize("credits,cgpa,message", [
        (0, 3.0, "Credits must be a positive number"),
        ("abc", 3.0, "Credits must be a positive number"),
        (10, 4.5, "CGPA must be between 0 and 4.0"),
        (10, -0.1, "CGPA must be between 0 and 4.0"),
        (10, "", "CGPA must be between 0 and 4.0"),
        (10, "0_4", "CGPA must be between 0 and 4.0"),
    ])
    def test_invalid_bulk_input(self, credits, cgpa, message):
        session = EditSession.manual()
        with pytest.raises(InvalidDataError, match=message):
            session.add_bulk_entry(credits, cgpa)
        assert session.courses == []


class TestRecalculateScheduler:
    """Tests for the single deferred recalculate"""

    def test_request_resolves_with_errors(self, two_course_session):
        two_course_session.exclude(1)

        async def scenario():
            scheduler = RecalculateScheduler(two_course_session, delay=0.01)
            future = scheduler.request()
            assert scheduler.pending
            return await future, scheduler

        errors, scheduler = asyncio.run(scenario())
        assert errors == {}
        assert not scheduler.pending
        assert two_course_session.cgpa == 4.0

    def test_last_request_wins(self, two_course_session):
        calls = []

        async def scenario():
            scheduler = RecalculateScheduler(two_course_session, delay=0.01, on_done=calls.append)
            first = scheduler.request()
            second = scheduler.request()
            assert first.cancelled()
            return await second

        assert asyncio.run(scenario()) == {}
        assert calls == [{}]

    def test_edits_before_firing_are_included(self, two_course_session):
        async def scenario():
            scheduler = RecalculateScheduler(two_course_session, delay=0.01)
            future = scheduler.request()
            two_course_session.edit(1, grade="Z")
            return await future

        assert asyncio.run(scenario()) == {1: "Invalid grade"}
        assert two_course_session.cgpa == pytest.approx(TWO_COURSE_CGPA)

    def test_cancel_drops_request(self, two_course_session):
        calls = []

        async def scenario():
            scheduler = RecalculateScheduler(two_course_session, delay=0.01, on_done=calls.append)
            scheduler.request()
            scheduler.cancel()
            await asyncio.sleep(0.05)
            return scheduler

        scheduler = asyncio.run(scenario())
        assert calls == []
        assert scheduler.last_errors is None

    def test_request_needs_an_event_loop(self, two_course_session):
        with pytest.raises(RuntimeError):
            RecalculateScheduler(two_course_session).request()
