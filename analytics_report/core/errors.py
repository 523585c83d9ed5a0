"""
Error taxonomy for the metric report pipeline.

Only faults that abort a run are exceptions. Division-by-zero guards and
stddev over fewer than two samples are handled locally by yielding a null
field; input validation problems are reported as lists of
models.schemas.ValidationError by the ingestion layer.
"""


class ReportError(Exception):
    """Base class for all report pipeline failures."""


class ReportConfigurationError(ReportError, ValueError):
    """
    Invalid run configuration (cutoff, run timestamp or window size).

    Raised before any stage runs, so no output is produced.
    """


class MissingCategoryStatisticsError(ReportError, RuntimeError):
    """
    A category reached a downstream stage without a statistics row.

    Statistics are computed from the same snapshot the later stages consume,
    so this signals an internal consistency fault and the run is aborted.
    """

    def __init__(self, categories):
        self.categories = sorted(str(c) for c in categories)
        super().__init__(
            f"No category statistics for: {', '.join(self.categories)}"
        )
