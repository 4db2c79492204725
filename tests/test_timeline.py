"""
Unit tests for the margin timeline functions

Tests windows, conflict classification, cascade planning and relinking
without a database.
"""
import pytest
from datetime import date
from decimal import Decimal

from fxrates.core.constants import *
from fxrates.margins.errors import MarginValidationError, DuplicateStartDateError
from fxrates.margins.timeline import (
    Bounded,
    Unbounded,
    MarginSpan,
    CloseAction,
    ShiftAction,
    DeleteAction,
    window_from,
    windows_overlap,
    resolve_conflicts,
    plan_cascade,
    effective_span,
    relink,
)


def span(margin_id, start, end=None, value="0.02"):
    return MarginSpan(id=margin_id, value=Decimal(value), window=window_from(start, end))


class TestWindows:
    """Test the Bounded/Unbounded window variant"""

    def test_window_from_without_end_is_unbounded(self):
        window = window_from(date(2024, 1, 1))

        assert window == Unbounded(date(2024, 1, 1))
        assert window.end_or_none is None
        assert window.contains(date(2099, 12, 31))
        assert not window.contains(date(2023, 12, 31))

    def test_window_from_with_end_is_bounded(self):
        window = window_from(date(2024, 1, 1), date(2024, 1, 31))

        assert window == Bounded(date(2024, 1, 1), date(2024, 1, 31))
        assert window.contains(date(2024, 1, 31))
        assert not window.contains(date(2024, 2, 1))

    def test_single_day_window(self):
        window = window_from(date(2024, 1, 1), date(2024, 1, 1))

        assert window.contains(date(2024, 1, 1))

    def test_end_before_start_raises_error(self):
        with pytest.raises(MarginValidationError, match="must not be before"):
            window_from(date(2024, 2, 1), date(2024, 1, 31))

    def test_missing_start_raises_error(self):
        with pytest.raises(MarginValidationError, match="Start date is required"):
            window_from(None)

    def test_overlap(self):
        january = Bounded(date(2024, 1, 1), date(2024, 1, 31))
        february = Bounded(date(2024, 2, 1), date(2024, 2, 29))
        open_mid_january = Unbounded(date(2024, 1, 15))

        assert not windows_overlap(january, february)
        assert windows_overlap(january, open_mid_january)
        assert windows_overlap(open_mid_january, february)
        assert windows_overlap(Unbounded(date(2024, 1, 1)), Unbounded(date(2030, 1, 1)))


class TestResolveConflicts:
    """Test conflict classification of a candidate window"""

    def test_empty_timeline_has_no_conflicts(self):
        report = resolve_conflicts([], window_from(date(2024, 1, 1)))

        assert not report.has_conflicts
        assert report.describe() == []

    def test_exact_start_collision_raises_error(self):
        existing = [span(1, date(2024, 1, 1), date(2024, 1, 31))]

        with pytest.raises(DuplicateStartDateError, match="2024-01-01"):
            resolve_conflicts(existing, window_from(date(2024, 1, 1), date(2024, 1, 5)))

    def test_open_predecessor_is_closed(self):
        existing = [span(1, date(2024, 1, 1))]

        report = resolve_conflicts(existing, window_from(date(2024, 6, 1), date(2024, 6, 30)))

        assert report.predecessor.id == 1
        assert report.successor is None
        assert report.has_conflicts

    def test_predecessor_ending_before_new_start_is_not_a_conflict(self):
        existing = [span(1, date(2024, 1, 1), date(2024, 3, 31))]

        report = resolve_conflicts(existing, window_from(date(2024, 4, 1)))

        assert report.predecessor is None
        assert not report.has_conflicts

    def test_predecessor_ending_on_new_start_is_closed(self):
        existing = [span(1, date(2024, 1, 1), date(2024, 4, 1))]

        report = resolve_conflicts(existing, window_from(date(2024, 4, 1)))

        assert report.predecessor.id == 1

    def test_unbounded_candidate_deletes_every_successor(self):
        existing = [
            span(1, date(2024, 1, 1), date(2024, 1, 31)),
            span(2, date(2024, 3, 1), date(2024, 3, 31)),
            span(3, date(2024, 5, 1)),
        ]

        report = resolve_conflicts(existing, window_from(date(2024, 2, 15)))

        assert report.predecessor is None
        assert report.successor.id == 2
        assert [s.id for s in report.to_delete] == [2, 3]
        assert report.to_shift is None

    def test_bounded_candidate_shifts_straddling_successor(self):
        existing = [span(1, date(2024, 3, 1))]

        report = resolve_conflicts(existing, window_from(date(2024, 2, 1), date(2024, 3, 15)))

        assert report.successor.id == 1
        assert report.to_shift.id == 1
        assert report.to_delete == []

    def test_bounded_candidate_deletes_covered_successors(self):
        existing = [
            span(1, date(2024, 3, 1), date(2024, 3, 10)),
            span(2, date(2024, 3, 11), date(2024, 3, 20)),
            span(3, date(2024, 3, 21)),
        ]

        report = resolve_conflicts(existing, window_from(date(2024, 2, 15), date(2024, 3, 25)))

        assert report.successor.id == 1
        assert [s.id for s in report.to_delete] == [1, 2]
        assert report.to_shift.id == 3

    def test_successor_ending_on_candidate_end_is_deleted(self):
        existing = [span(1, date(2024, 3, 1), date(2024, 3, 15))]

        report = resolve_conflicts(existing, window_from(date(2024, 2, 1), date(2024, 3, 15)))

        assert [s.id for s in report.to_delete] == [1]
        assert report.to_shift is None

    def test_successor_after_bounded_candidate_is_kept_but_reported(self):
        existing = [span(1, date(2024, 1, 1), date(2024, 1, 31)), span(2, date(2024, 6, 1))]

        report = resolve_conflicts(existing, window_from(date(2024, 3, 1), date(2024, 3, 31)))

        assert report.predecessor is None
        assert report.successor.id == 2
        assert report.to_keep.id == 2
        assert report.to_shift is None
        assert report.to_delete == []
        assert report.has_conflicts
        assert report.describe() == [span(2, date(2024, 6, 1)).describe(CONFLICT_ACTION_KEEP)]

    def test_successor_starting_day_after_candidate_end_is_kept(self):
        existing = [span(1, date(2024, 3, 1))]

        report = resolve_conflicts(existing, window_from(date(2024, 2, 1), date(2024, 2, 29)))

        assert report.to_keep.id == 1
        assert plan_cascade(report).actions == []

    def test_only_nearest_unreached_successor_is_reported(self):
        existing = [span(1, date(2024, 3, 1), date(2024, 3, 31)), span(2, date(2024, 5, 1))]

        report = resolve_conflicts(existing, window_from(date(2024, 2, 1), date(2024, 2, 10)))

        assert [c[FIELD_ID] for c in report.describe()] == [1]

    def test_unsorted_input_is_sorted(self):
        existing = [span(2, date(2024, 5, 1)), span(1, date(2024, 1, 1), date(2024, 4, 30))]

        report = resolve_conflicts(existing, window_from(date(2024, 3, 1)))

        assert report.predecessor.id == 1
        assert [s.id for s in report.to_delete] == [2]

    def test_describe_lists_actions_in_date_order(self):
        existing = [span(1, date(2024, 1, 1), date(2024, 2, 10)), span(2, date(2024, 2, 11), value="0.03")]

        report = resolve_conflicts(existing, window_from(date(2024, 2, 1), date(2024, 2, 20)))
        conflicts = report.describe()

        assert [c[FIELD_ID] for c in conflicts] == [1, 2]
        assert conflicts[0][FIELD_ACTION] == CONFLICT_ACTION_CLOSE
        assert conflicts[0][FIELD_END_DATE] == "2024-02-10"
        assert conflicts[1][FIELD_ACTION] == CONFLICT_ACTION_SHIFT
        assert conflicts[1][FIELD_END_DATE] is None
        assert conflicts[1][FIELD_VALUE] == pytest.approx(0.03)

    def test_none_window_raises_error(self):
        with pytest.raises(ValueError, match="window is REQUIRED"):
            resolve_conflicts([], None)


class TestPlanCascade:
    """Test ordering and dates of cascade actions"""

    def test_close_predecessor_day_before_new_start(self):
        report = resolve_conflicts([span(1, date(2024, 1, 1))], window_from(date(2024, 3, 1)))

        plan = plan_cascade(report)

        assert plan.actions == [CloseAction(report.predecessor, date(2024, 2, 29))]
        assert plan.closed == [1]

    def test_shift_successor_day_after_new_end(self):
        report = resolve_conflicts([span(1, date(2024, 3, 1))],
                                   window_from(date(2024, 2, 1), date(2024, 3, 31)))

        plan = plan_cascade(report)

        assert plan.actions == [ShiftAction(report.to_shift, date(2024, 4, 1))]
        assert plan.shifted == [1]

    def test_close_then_shift_then_delete(self):
        existing = [
            span(1, date(2024, 1, 1), date(2024, 2, 10)),
            span(2, date(2024, 2, 15), date(2024, 2, 18)),
            span(3, date(2024, 2, 19)),
        ]
        report = resolve_conflicts(existing, window_from(date(2024, 2, 1), date(2024, 2, 20)))

        plan = plan_cascade(report)

        assert [type(a) for a in plan.actions] == [CloseAction, ShiftAction, DeleteAction]
        assert plan.closed == [1]
        assert plan.shifted == [3]
        assert plan.deleted == [2]
        assert plan.actions[1].new_start == date(2024, 2, 21)

    def test_no_conflicts_means_empty_plan(self):
        plan = plan_cascade(resolve_conflicts([], window_from(date(2024, 1, 1))))

        assert plan.actions == []


class TestRelink:
    """Test the pure linkage computation"""

    def test_observations_follow_their_window(self):
        spans = [span(1, date(2024, 1, 1), date(2024, 1, 31)), span(2, date(2024, 3, 1))]
        observations = [
            (10, date(2023, 12, 31)),
            (11, date(2024, 1, 1)),
            (12, date(2024, 1, 31)),
            (13, date(2024, 2, 15)),
            (14, date(2024, 3, 1)),
            (15, date(2030, 1, 1)),
        ]

        links = relink(spans, observations)

        assert links == {10: None, 11: 1, 12: 1, 13: None, 14: 2, 15: 2}

    def test_no_spans_unlinks_everything(self):
        assert relink([], [(1, date(2024, 1, 1))]) == {1: None}

    def test_effective_span(self):
        spans = [span(2, date(2024, 3, 1)), span(1, date(2024, 1, 1), date(2024, 1, 31))]

        assert effective_span(spans, date(2024, 1, 10)).id == 1
        assert effective_span(spans, date(2024, 2, 10)) is None
        assert effective_span(spans, date(2025, 1, 1)).id == 2
        assert effective_span(spans, date(2023, 1, 1)) is None
