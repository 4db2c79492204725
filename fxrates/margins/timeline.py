"""
Margin timeline

Pure functions over the set of margin validity windows. Nothing in this
module touches the database: the conflict resolver and the cascade planner
describe what has to change, MarginService/CascadeService apply it.

Windows are a tagged variant, Bounded(start, end) or Unbounded(start).
The nullable end_date only exists at the storage and HTTP boundaries.
"""
from bisect import bisect_right
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Union

from dateutil.relativedelta import relativedelta

from fxrates.core.constants import *
from fxrates.margins.errors import MarginValidationError, DuplicateStartDateError

ONE_DAY = relativedelta(days=1)


@dataclass(frozen=True)
class Bounded:
    start: date
    end: date

    @property
    def end_or_none(self):
        return self.end

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    def reaches(self, day: date) -> bool:
        """True if the window is still effective on or after `day`"""
        return self.end >= day


@dataclass(frozen=True)
class Unbounded:
    start: date

    @property
    def end_or_none(self):
        return None

    def contains(self, day: date) -> bool:
        return self.start <= day

    def reaches(self, day: date) -> bool:
        return True


Window = Union[Bounded, Unbounded]


def window_from(start_date: date, end_date: Optional[date] = None) -> Window:
    """
    Build a window from a start date and a nullable end date

    Raises:
        MarginValidationError: If start_date is None or end_date < start_date
    """
    if start_date is None:
        raise MarginValidationError("Start date is required")
    if end_date is None:
        return Unbounded(start_date)
    if end_date < start_date:
        raise MarginValidationError(f"End date ({end_date}) must not be before start date ({start_date})")
    return Bounded(start_date, end_date)


def windows_overlap(first: Window, second: Window) -> bool:
    return first.reaches(second.start) and second.reaches(first.start)


@dataclass(frozen=True)
class MarginSpan:
    """A persisted margin reduced to what the timeline needs"""
    id: int
    value: object
    window: Window

    @property
    def start(self):
        return self.window.start

    def describe(self, action=None):
        description = {
            FIELD_ID: self.id,
            FIELD_VALUE: float(self.value) if self.value is not None else None,
            FIELD_START_DATE: self.window.start.isoformat(),
            FIELD_END_DATE: self.window.end_or_none.isoformat() if self.window.end_or_none else None,
        }
        if action is not None:
            description[FIELD_ACTION] = action
        return description


@dataclass
class ConflictReport:
    """
    Relationship of a candidate window to the existing timeline.

    predecessor: earlier margin still effective on the candidate start (to close)
    successor: nearest later margin
    to_shift: later margin that outlives a bounded candidate (start moves past its end)
    to_delete: later margins fully covered by the candidate
    to_keep: successor starting after a bounded candidate's end, left as it is
    """
    window: Window
    predecessor: Optional[MarginSpan] = None
    successor: Optional[MarginSpan] = None
    to_shift: Optional[MarginSpan] = None
    to_delete: List[MarginSpan] = field(default_factory=list)
    to_keep: Optional[MarginSpan] = None

    @property
    def has_conflicts(self):
        return self.predecessor is not None or self.successor is not None

    def describe(self):
        conflicts = []
        if self.predecessor is not None:
            conflicts.append(self.predecessor.describe(CONFLICT_ACTION_CLOSE))
        if self.to_shift is not None:
            conflicts.append(self.to_shift.describe(CONFLICT_ACTION_SHIFT))
        for span in self.to_delete:
            conflicts.append(span.describe(CONFLICT_ACTION_DELETE))
        if self.to_keep is not None:
            conflicts.append(self.to_keep.describe(CONFLICT_ACTION_KEEP))
        conflicts.sort(key=lambda c: c[FIELD_START_DATE])
        return conflicts


def resolve_conflicts(existing: Iterable[MarginSpan], window: Window) -> ConflictReport:
    """
    Classify existing margins against a candidate window

    Args:
        existing: Persisted margins, excluding the margin being updated (required)
        window: Candidate window (required)

    Returns:
        ConflictReport

    Raises:
        DuplicateStartDateError: If an existing margin starts on the candidate start
    """
    if window is None:
        raise ValueError("window is REQUIRED")

    report = ConflictReport(window=window)

    for span in sorted(existing, key=lambda s: s.start):
        if span.start == window.start:
            raise DuplicateStartDateError(window.start)

        if span.start < window.start:
            if span.window.reaches(window.start):
                report.predecessor = span
            continue

        # Later margins beyond a bounded candidate's end do not overlap it,
        # the nearest one still needs confirmation but keeps its window
        if not window.reaches(span.start):
            if report.successor is None:
                report.successor = span
                report.to_keep = span
            break

        if report.successor is None:
            report.successor = span

        if isinstance(window, Unbounded) or \
                (isinstance(span.window, Bounded) and span.window.end <= window.end):
            report.to_delete.append(span)
        else:
            report.to_shift = span

    return report


@dataclass(frozen=True)
class CloseAction:
    span: MarginSpan
    new_end: date


@dataclass(frozen=True)
class ShiftAction:
    span: MarginSpan
    new_start: date


@dataclass(frozen=True)
class DeleteAction:
    span: MarginSpan


@dataclass
class CascadePlan:
    window: Window
    actions: list = field(default_factory=list)

    @property
    def closed(self):
        return [a.span.id for a in self.actions if isinstance(a, CloseAction)]

    @property
    def shifted(self):
        return [a.span.id for a in self.actions if isinstance(a, ShiftAction)]

    @property
    def deleted(self):
        return [a.span.id for a in self.actions if isinstance(a, DeleteAction)]


def plan_cascade(report: ConflictReport) -> CascadePlan:
    """
    Turn a conflict report into ordered neighbour changes:
    close the predecessor, then shift or delete the successors.
    """
    window = report.window
    plan = CascadePlan(window=window)

    if report.predecessor is not None:
        plan.actions.append(CloseAction(report.predecessor, window.start - ONE_DAY))

    if report.to_shift is not None:
        # to_shift only exists for bounded candidates
        plan.actions.append(ShiftAction(report.to_shift, window.end + ONE_DAY))

    for span in report.to_delete:
        plan.actions.append(DeleteAction(span))

    return plan


def effective_span(spans: Iterable[MarginSpan], day: date) -> Optional[MarginSpan]:
    """Margin whose window contains `day`, or None"""
    ordered = sorted(spans, key=lambda s: s.start)
    index = bisect_right([s.start for s in ordered], day) - 1
    if index >= 0 and ordered[index].window.contains(day):
        return ordered[index]
    return None


def relink(spans: Iterable[MarginSpan], observations) -> Dict[int, Optional[int]]:
    """
    Compute the margin link of every observation

    Args:
        spans: Non-overlapping margins
        observations: Iterable of (observation_id, date) pairs

    Returns:
        Dict mapping observation id to margin id, or None when no margin is effective
    """
    ordered = sorted(spans, key=lambda s: s.start)
    starts = [s.start for s in ordered]

    links = {}
    for observation_id, day in observations:
        index = bisect_right(starts, day) - 1
        if index >= 0 and ordered[index].window.contains(day):
            links[observation_id] = ordered[index].id
        else:
            links[observation_id] = None
    return links
