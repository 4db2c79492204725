"""
Cascade Service

Applies a CascadePlan to the margin store and the rate linkage table.
Runs inside the caller's transaction and never commits.
"""
from fxrates.core.constants import *
from fxrates.margins.timeline import CloseAction, ShiftAction, DeleteAction
from fxrates import logger


class CascadeService:
    """Applies neighbour closes, shifts and deletions for a margin write"""

    def __init__(self, application_context):
        """
        Initialize cascade service

        Args:
            application_context: Application context (required)

        Raises:
            ValueError: If application_context is None
        """
        if application_context is None:
            raise ValueError("application_context is REQUIRED")

        self.application_context = application_context
        self.database_manager = application_context.database_manager

    def apply(self, session, plan, user_id, new_margin_id=None):
        """
        Apply neighbour changes in plan order

        Stale links are cleared here, before the caller relinks the new window.

        Args:
            session: Open session inside the mutation transaction (required)
            plan: CascadePlan (required)
            user_id: Acting user, recorded in the audit trail
            new_margin_id: Margin causing the cascade, if already known

        Returns:
            List of MarginHistory entries written for the neighbours
        """
        if session is None:
            raise ValueError("session is REQUIRED")
        if plan is None:
            raise ValueError("plan is REQUIRED")

        entries = []
        for action in plan.actions:
            if isinstance(action, CloseAction):
                entries.append(self._close(session, action, user_id, new_margin_id))
            elif isinstance(action, ShiftAction):
                entries.append(self._shift(session, action, user_id, new_margin_id))
            elif isinstance(action, DeleteAction):
                entries.append(self._delete(session, action, user_id, new_margin_id))
            else:
                raise ValueError(f"Unknown cascade action: {action}")
        return entries

    def _close(self, session, action, user_id, new_margin_id):
        margin_id = action.span.id
        self.database_manager.close_margin(session, margin_id, action.new_end)
        cleared = self.database_manager.clear_links(session, [margin_id], after=action.new_end)
        entry = self.database_manager.add_history(session, ACTION_CLOSED, user_id,
                                                  old_margin_id=margin_id, new_margin_id=new_margin_id,
                                                  comment=f"margin {margin_id} closed on {action.new_end}")
        logger.debug(f"closed margin {margin_id} on {action.new_end}, {cleared} rates unlinked")
        return entry

    def _shift(self, session, action, user_id, new_margin_id):
        margin_id = action.span.id
        self.database_manager.shift_margin(session, margin_id, action.new_start)
        cleared = self.database_manager.clear_links(session, [margin_id], before=action.new_start)
        entry = self.database_manager.add_history(session, ACTION_SHIFTED, user_id,
                                                  old_margin_id=margin_id, new_margin_id=new_margin_id,
                                                  comment=f"margin {margin_id} now starts on {action.new_start}")
        logger.debug(f"shifted margin {margin_id} to {action.new_start}, {cleared} rates unlinked")
        return entry

    def _delete(self, session, action, user_id, new_margin_id):
        margin_id = action.span.id
        cleared = self.database_manager.clear_links(session, [margin_id])
        # Audit row keeps the id after the margin row is gone
        entry = self.database_manager.add_history(session, ACTION_DELETED, user_id,
                                                  old_margin_id=margin_id, new_margin_id=new_margin_id,
                                                  comment=f"margin {margin_id} starting {action.span.start} deleted")
        session.flush()
        self.database_manager.delete_margins(session, [margin_id])
        logger.debug(f"deleted margin {margin_id}, {cleared} rates unlinked")
        return entry
