"""
Pydantic request/response models for the metric report backend.

Covers ingestion validation results, report run requests/responses and the
per-category summaries exposed by the API. Report rows themselves stay in
pandas DataFrames inside the pipeline and are serialized to plain dicts at
the API boundary.

All models use Pydantic v2 syntax.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# Ingestion Schemas
# =============================================================================


class ValidationError(BaseModel):
    """
    Validation error detail.

    Used for reporting data validation issues during snapshot ingestion.
    """
    field: str = Field(
        ...,
        description="Field with validation error"
    )
    message: str = Field(
        ...,
        description="Error message"
    )
    row_number: Optional[int] = Field(
        default=None,
        ge=1,
        description="Row number where error occurred"
    )


# =============================================================================
# Report Schemas
# =============================================================================


class ReportRunRequest(BaseModel):
    """
    Parameters for an on-demand report run.

    Omitted window sizes and cutoff fall back to the Settings defaults.
    The run timestamp is always explicit so identical requests reproduce
    identical reports.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "runTimestamp": "2026-10-19T06:00:00",
                "cutoff": "2023-01-01T00:00:00",
                "shortWindow": 7,
                "longWindow": 30,
                "anomalyWindow": 14,
                "includeRows": True,
                "limit": 500
            }
        }
    )

    runTimestamp: datetime = Field(
        ...,
        description="Timestamp all run-relative fields are computed against"
    )
    cutoff: Optional[datetime] = Field(
        default=None,
        description="Include observations created at or after this timestamp"
    )
    shortWindow: Optional[int] = Field(default=None, description="Short moving-average window in rows")
    longWindow: Optional[int] = Field(default=None, description="Long moving-average window in rows")
    anomalyWindow: Optional[int] = Field(default=None, description="Anomaly baseline window in rows")
    includeRows: bool = Field(
        default=False,
        description="Return report rows in the response"
    )
    limit: Optional[int] = Field(
        default=None,
        ge=1,
        description="Maximum number of rows returned when includeRows is set"
    )


class CategorySummary(BaseModel):
    """
    Per-category statistics surfaced alongside a report run.

    stddev is null for categories with a single observation.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "category": "A",
                "count": 3,
                "mean": 20.0,
                "min": 10.0,
                "max": 30.0,
                "stddev": 10.0,
                "p25": 15.0,
                "median": 20.0,
                "p75": 25.0,
                "outliers": 0,
                "anomalousDays": 0
            }
        }
    )

    category: str
    count: int = Field(..., ge=1)
    mean: float
    min: float
    max: float
    stddev: Optional[float] = None
    p25: float
    median: float
    p75: float
    outliers: int = Field(default=0, ge=0)
    anomalousDays: int = Field(default=0, ge=0)

    @model_validator(mode='after')
    def _check_percentile_order(self) -> 'CategorySummary':
        if not (self.p25 <= self.median <= self.p75):
            raise ValueError("percentiles must satisfy p25 <= median <= p75")
        return self


class ReportRunResponse(BaseModel):
    """
    Result of an on-demand report run.
    """
    runTimestamp: datetime
    cutoff: datetime
    rowCount: int = Field(..., ge=0)
    categoryCount: int = Field(..., ge=0)
    categories: List[CategorySummary] = Field(default_factory=list)
    rows: Optional[List[Dict[str, Any]]] = Field(
        default=None,
        description="Report rows ordered by category then observation date"
    )
