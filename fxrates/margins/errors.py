class MarginValidationError(ValueError):
    """Client-correctable input problem, raised before any write"""


class DuplicateStartDateError(MarginValidationError):

    def __init__(self, start_date):
        self.start_date = start_date
        super().__init__(f"A margin starting on {start_date} already exists. "
                         f"You cannot create two margins with the same Start Date.")


class FutureStartDateError(MarginValidationError):

    def __init__(self, start_date, today):
        self.start_date = start_date
        self.today = today
        super().__init__("Future margins are not allowed. Start Date must be today or in the past.")


class MarginConflictError(Exception):
    """
    The request would close, shift or delete neighbouring margins.

    Not a failure: the caller is expected to confirm and retry with force_create.
    """

    def __init__(self, conflicts):
        self.conflicts = conflicts
        super().__init__(f"Conflict detected with {len(conflicts)} margin(s)")


class MarginNotFoundError(LookupError):

    def __init__(self, margin_id):
        self.margin_id = margin_id
        super().__init__(f"Margin not found: {margin_id}")
