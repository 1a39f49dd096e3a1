"""Exception types raised across the preparation and modeling layers."""


class AnalysisError(Exception):
    """Base class for every failure surfaced by the analysis pipeline."""


class MissingColumnError(AnalysisError, KeyError):
    def __init__(self, column, aliases):
        self.column = column
        self.aliases = tuple(aliases)
        super().__init__(f"Required column '{column}' not found (looked for: {', '.join(self.aliases)})")

    def __str__(self):
        return self.args[0]


class InvalidTimeFormat(AnalysisError, ValueError):
    """A time-of-day value could not be parsed. Aborts the whole batch."""

    def __init__(self, value, row=None):
        self.value = value
        self.row = row
        where = f" at row {row!r}" if row is not None else ""
        super().__init__(f"Cannot parse time-of-day value {value!r}{where}; expected HH:MM:SS or HH:MM")


class InvalidPreparedRow(AnalysisError, ValueError):
    """Rows handed to the fitter break the prepared-row invariant (null borough, hour or location type)."""


class DegenerateOutcome(AnalysisError, ValueError):
    """Fewer than two distinct outcome categories remain after filtering."""


class InvalidReferenceLevel(AnalysisError, ValueError):
    """A requested reference level is not present in the data."""


class ConvergenceFailure(AnalysisError, RuntimeError):
    """
    The optimizer hit its iteration cap, or its line search stalled, without meeting the tolerance.
    `model` carries the last iterate, marked converged=False.
    """

    def __init__(self, message, model=None):
        super().__init__(message)
        self.model = model


class PotentialSeparation(UserWarning):
    """A fitted coefficient exceeds the sanity bound (likely separation)."""
