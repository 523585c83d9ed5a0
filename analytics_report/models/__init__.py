"""
Models package for the metric report backend.

Re-exports enums and Pydantic schemas so callers can write:

    from analytics_report.models import Performance, ValidationError, ReportRunRequest
"""

from analytics_report.models.enums import (
    Performance,
    OutlierFlag,
    AnomalyFlag,
    TrendDirection,
    QuartileBand,
    SizeBand,
    VolumeBand,
    DeviationBand,
    AgeBand,
    ReportStatus,
    WindowStatistic,
    BucketGrain,
    SnapshotSource,
    RiskBand,
    ContactStatus,
)
from analytics_report.models.schemas import (
    ValidationError,
    ReportRunRequest,
    CategorySummary,
    ReportRunResponse,
)

__all__ = [
    # Enums
    'Performance',
    'OutlierFlag',
    'AnomalyFlag',
    'TrendDirection',
    'QuartileBand',
    'SizeBand',
    'VolumeBand',
    'DeviationBand',
    'AgeBand',
    'ReportStatus',
    'WindowStatistic',
    'BucketGrain',
    'SnapshotSource',
    'RiskBand',
    'ContactStatus',
    # Schemas
    'ValidationError',
    'ReportRunRequest',
    'CategorySummary',
    'ReportRunResponse',
]
