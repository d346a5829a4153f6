"""
Error kinds raised by the plot pipeline.

Layer-fatal errors (missing columns, missing required aesthetics, row count
mismatches, discrete values fed to a numeric stat) abort only the affected
layer. Scale contract violations are programming errors and propagate to the
caller.
"""


class PlotweaveError(Exception):
    """Base class for all pipeline errors."""

    pass


class ColumnNotFound(PlotweaveError, KeyError):
    """A mapped aesthetic references a column the data source does not have."""

    def __init__(self, name: str, available: list[str] | None = None):
        self.name = name
        self.available = list(available) if available is not None else []
        super().__init__(name)

    def __str__(self) -> str:
        if self.available:
            return f"Column '{self.name}' not found (available: {', '.join(self.available)})"
        return f"Column '{self.name}' not found"


class NoPositionalAesthetic(PlotweaveError):
    """No column determines the observation count but the geom needs positions."""

    pass


class MissingRequiredAesthetic(PlotweaveError):
    """A geom or stat requires an aesthetic that has no mapped, fixed or default value."""

    def __init__(self, owner: str, missing: list[str]):
        self.owner = owner
        self.missing = list(missing)
        super().__init__(
            f"{owner} requires missing aesthetics: {', '.join(self.missing)}"
        )


class RowCountMismatch(PlotweaveError):
    """Aesthetics within one layer resolve to different observation counts."""

    pass


class NonNumericAesthetic(PlotweaveError, TypeError):
    """A stat needs numbers for an aesthetic that holds discrete values."""

    def __init__(self, owner: str, aesthetic: str):
        self.owner = owner
        self.aesthetic = aesthetic
        super().__init__(f"{owner} requires numeric values for aesthetic '{aesthetic}'")


class StatComputationFailed(PlotweaveError):
    """
    A statistical transform could not produce a result, e.g. smoothing with too
    few points. Recoverable: the layer is drawn with an empty result.
    """

    pass


class UntrainedScale(PlotweaveError, RuntimeError):
    """Mapping was attempted before the scale was trained and frozen."""

    pass


class ScaleFrozen(PlotweaveError, RuntimeError):
    """Training was attempted on a scale that is already frozen."""

    pass


class PipelineStateError(PlotweaveError, RuntimeError):
    """A pipeline stage was entered out of order."""

    pass


# Errors that abort a single layer while sibling layers still render.
LAYER_FATAL_ERRORS: tuple[type[PlotweaveError], ...] = (
    ColumnNotFound,
    NoPositionalAesthetic,
    MissingRequiredAesthetic,
    RowCountMismatch,
    NonNumericAesthetic,
)
