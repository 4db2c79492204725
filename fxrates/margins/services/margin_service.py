"""
Margin Service

Transaction boundary for margin timeline writes. Each create/update runs
validation first, then a single transaction that locks the timeline,
resolves conflicts, applies the neighbour cascade, writes the margin and
relinks the rate observations of its window.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from fxrates.core.constants import *
from fxrates.margins.errors import (
    MarginValidationError,
    FutureStartDateError,
    MarginConflictError,
    MarginNotFoundError,
)
from fxrates.margins.timeline import window_from, resolve_conflicts, plan_cascade, relink
from fxrates.margins.services.cascade_service import CascadeService
from fxrates import logger

VALUE_QUANTUM = Decimal("0.000001")


@dataclass
class MarginMutationResult:
    """Outcome of a committed margin write"""
    margin_id: int
    closed: List[int] = field(default_factory=list)
    shifted: List[int] = field(default_factory=list)
    deleted: List[int] = field(default_factory=list)
    linked: int = 0


def parse_date(value, field_name):
    """
    Parse an ISO date (YYYY-MM-DD), a date or a datetime

    Returns:
        date or None when value is empty

    Raises:
        MarginValidationError: If the value is not a valid date
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise MarginValidationError(f"Invalid {field_name}: {value}")


class MarginService:
    """Creates and updates margins while keeping the timeline non-overlapping"""

    def __init__(self, application_context):
        """
        Initialize margin service

        Args:
            application_context: Application context (required)

        Raises:
            ValueError: If application_context is None
        """
        if application_context is None:
            raise ValueError("application_context is REQUIRED")

        self.application_context = application_context
        self.state_manager = application_context.state_manager
        self.database_manager = application_context.database_manager
        if self.database_manager is None:
            raise ValueError("database_manager is REQUIRED")

        self.cascade_service = CascadeService(application_context)

    # Validation
    def parse_value(self, value_pct):
        """
        Convert a percentage (2 = 2%) into the stored decimal fraction (0.02)

        Raises:
            MarginValidationError: If the value is missing, not numeric or out of range
        """
        if value_pct is None or isinstance(value_pct, bool):
            raise MarginValidationError("Invalid margin value")
        try:
            pct = Decimal(str(value_pct).strip())
        except InvalidOperation:
            raise MarginValidationError("Invalid margin value")
        if not pct.is_finite():
            raise MarginValidationError("Invalid margin value")

        max_pct = Decimal(str(self.state_manager.get_config_value(CONFIG_MAX_MARGIN_PCT) or DEFAULT_MAX_MARGIN_PCT))
        if pct < 0 or pct > max_pct:
            raise MarginValidationError(f"Margin value must be between 0 and {max_pct}%, got: {pct}")

        return (pct / Decimal(100)).quantize(VALUE_QUANTUM)

    def build_window(self, start_date, end_date=None):
        """
        Validate dates and build the candidate window

        Raises:
            MarginValidationError: Missing/invalid dates or end before start
            FutureStartDateError: Start date after today
        """
        start = parse_date(start_date, "start date")
        if start is None:
            raise MarginValidationError("Start date is required")
        end = parse_date(end_date, "end date")

        today = self.state_manager.today()
        if start > today:
            raise FutureStartDateError(start, today)

        return window_from(start, end)

    # Writes
    def create_margin(self, value_pct, start_date, end_date=None, force_create=False, user_id=None):
        """
        Create a margin, closing/shifting/deleting neighbours once confirmed

        Args:
            value_pct: Margin in percent, 2 = 2% (required)
            start_date: First effective day, not in the future (required)
            end_date: Last effective day, None for open-ended
            force_create: Caller confirmed the neighbour changes
            user_id: Acting user

        Returns:
            MarginMutationResult

        Raises:
            MarginValidationError: Invalid input or duplicate start date
            MarginConflictError: Neighbours would change and force_create is False
        """
        value = self.parse_value(value_pct)
        window = self.build_window(start_date, end_date)

        session = self.database_manager.get_session()
        try:
            self.database_manager.lock_timeline(session)
            spans = self.database_manager.load_spans(session)
            report = resolve_conflicts(spans, window)

            if report.has_conflicts and not force_create:
                conflicts = report.describe()
                logger.warning(f"margin create from {window.start} needs confirmation: "
                               f"{[c[FIELD_ID] for c in conflicts]}")
                raise MarginConflictError(conflicts)

            plan = plan_cascade(report)
            entries = self.cascade_service.apply(session, plan, user_id)

            margin = self.database_manager.insert_margin(session, value, window, user_id)
            margin_id = margin.id
            for entry in entries:
                entry.new_margin_id = margin_id

            linked = self.database_manager.link_window(session, margin_id, window)
            self.database_manager.add_history(session, ACTION_CREATED, user_id,
                                              new_margin_id=margin_id,
                                              comment=f"{value} from {window.start} to {window.end_or_none or 'open'}")
            session.commit()

            logger.info(f"margin {margin_id} created: {value} from {window.start} "
                        f"to {window.end_or_none or 'open'} (closed={plan.closed}, "
                        f"shifted={plan.shifted}, deleted={plan.deleted}, linked={linked})")
            return MarginMutationResult(margin_id=margin_id,
                                        closed=plan.closed,
                                        shifted=plan.shifted,
                                        deleted=plan.deleted,
                                        linked=linked)

        except (MarginValidationError, MarginConflictError):
            session.rollback()
            raise
        except Exception as e:
            session.rollback()
            logger.error(f"Create margin failed, transaction rolled back: {e}")
            raise
        finally:
            session.close()

    def update_margin(self, margin_id, value_pct, start_date, end_date=None, user_id=None):
        """
        Update a margin and cascade onto its new neighbours

        Neighbour changes are applied without a confirmation step.

        Args:
            margin_id: Margin to update (required)
            value_pct: Margin in percent (required)
            start_date: First effective day, not in the future (required)
            end_date: Last effective day, None for open-ended
            user_id: Acting user

        Returns:
            MarginMutationResult

        Raises:
            MarginValidationError: Invalid input or duplicate start date
            MarginNotFoundError: Unknown margin_id
        """
        if margin_id is None:
            raise ValueError("margin_id is REQUIRED")

        value = self.parse_value(value_pct)
        window = self.build_window(start_date, end_date)

        session = self.database_manager.get_session()
        try:
            self.database_manager.lock_timeline(session)
            margin = self.database_manager.get_margin(session, margin_id)
            if margin is None:
                raise MarginNotFoundError(margin_id)

            spans = self.database_manager.load_spans(session, exclude_id=margin_id)
            report = resolve_conflicts(spans, window)
            plan = plan_cascade(report)
            self.cascade_service.apply(session, plan, user_id, new_margin_id=margin_id)

            self.database_manager.clear_links_outside(session, margin_id, window)
            self.database_manager.update_margin(session, margin, value, window, user_id)
            linked = self.database_manager.link_window(session, margin_id, window)
            self.database_manager.add_history(session, ACTION_UPDATED, user_id,
                                              old_margin_id=margin_id, new_margin_id=margin_id,
                                              comment=f"{value} from {window.start} to {window.end_or_none or 'open'}")
            session.commit()

            logger.info(f"margin {margin_id} updated: {value} from {window.start} "
                        f"to {window.end_or_none or 'open'} (closed={plan.closed}, "
                        f"shifted={plan.shifted}, deleted={plan.deleted}, linked={linked})")
            return MarginMutationResult(margin_id=margin_id,
                                        closed=plan.closed,
                                        shifted=plan.shifted,
                                        deleted=plan.deleted,
                                        linked=linked)

        except (MarginValidationError, MarginNotFoundError):
            session.rollback()
            raise
        except Exception as e:
            session.rollback()
            logger.error(f"Update margin {margin_id} failed, transaction rolled back: {e}")
            raise
        finally:
            session.close()

    def relink_all(self):
        """
        Recompute the margin link of every rate observation and repair drift

        Returns:
            Number of observations whose link changed
        """
        session = self.database_manager.get_session()
        try:
            self.database_manager.lock_timeline(session)
            spans = self.database_manager.load_spans(session)
            observations = self.database_manager.load_observations(session)
            links = relink(spans, [(o.id, o.date) for o in observations])

            changed = 0
            for observation in observations:
                margin_id = links[observation.id]
                if margin_id != observation.margin_id:
                    self.database_manager.set_link(session, observation.id, margin_id)
                    changed += 1

            session.commit()
            logger.info(f"relinked {changed} of {len(observations)} rate observations")
            return changed

        except Exception as e:
            session.rollback()
            logger.error(f"Relink failed, transaction rolled back: {e}")
            raise
        finally:
            session.close()

    # Reads
    def list_margins(self, active=False):
        """Margins ordered by start date descending, optionally only those effective today"""
        active_on = self.state_manager.today() if active else None
        return self.database_manager.get_margins(active_on=active_on)

    def get_margin_history(self):
        return self.database_manager.get_margin_history()

    def get_effective_margin(self, on_date) -> Optional[object]:
        day = parse_date(on_date, "date")
        if day is None:
            raise MarginValidationError("date is required")
        return self.database_manager.find_margin_for_date(day)

    def list_changes(self, limit=50):
        return self.database_manager.get_changes(limit)
