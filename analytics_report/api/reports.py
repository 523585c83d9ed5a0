"""
FastAPI router module for metric report runs.

Implements POST /metrics/run (run the report over the PostgreSQL snapshot),
POST /metrics/upload (run the report over an uploaded CSV snapshot),
GET /metrics/categories (category statistics for a cutoff) and GET /health.

Error mapping:
- Snapshot validation errors -> 422 with the list of ValidationError
- Invalid run configuration -> 400
- Anything else -> 500, logged with traceback
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd
from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile

from analytics_report.core.dependencies import DBSessionDep, SettingsDep
from analytics_report.core.errors import ReportConfigurationError
from analytics_report.models.schemas import (
    CategorySummary,
    ReportRunRequest,
    ReportRunResponse,
    ValidationError,
)
from analytics_report.services.category_stats import compute_category_statistics
from analytics_report.services.ingestion import (
    fetch_observations,
    load_observations_csv,
    normalize_cutoff,
    prepare_observations,
)
from analytics_report.services.pipeline import (
    ReportConfig,
    ReportResult,
    build_category_summaries,
    run_metric_report,
    summarize_categories,
)


# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Helper Functions
# =============================================================================

def frame_records(frame: pd.DataFrame, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    Convert report rows to JSON-safe dicts (NaN -> None, timestamps -> ISO strings).
    """
    if limit is not None:
        frame = frame.head(limit)
    return json.loads(frame.to_json(orient='records', date_format='iso'))


def _raise_validation_errors(errors: List[ValidationError]) -> None:
    raise HTTPException(
        status_code=422,
        detail=[error.model_dump() for error in errors],
    )


def _build_response(
    result: ReportResult,
    include_rows: bool,
    limit: Optional[int],
) -> ReportRunResponse:
    return ReportRunResponse(
        runTimestamp=result.config.run_timestamp,
        cutoff=result.config.cutoff,
        rowCount=result.row_count,
        categoryCount=len(result.category_stats),
        categories=build_category_summaries(result),
        rows=frame_records(result.report, limit) if include_rows else None,
    )


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/metrics/run", response_model=ReportRunResponse)
async def run_report(request: ReportRunRequest, settings: SettingsDep) -> ReportRunResponse:
    """
    Run the metric report over the observation table.

    Args:
        request: Run parameters; omitted values fall back to Settings.

    Returns:
        ReportRunResponse with category summaries and optionally the rows.
    """
    try:
        config = ReportConfig.from_settings(
            settings,
            request.runTimestamp,
            cutoff=request.cutoff,
            short_window=request.shortWindow,
            long_window=request.longWindow,
            anomaly_window=request.anomalyWindow,
        ).validate()

        df, errors = await fetch_observations(settings.observation_table, config.cutoff)
        if errors:
            _raise_validation_errors(errors)

        result = run_metric_report(df, config)
        logger.info(f"Report run produced {result.row_count} rows")
        return _build_response(result, request.includeRows, request.limit)

    except HTTPException:
        raise
    except ReportConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Error running metric report")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to run metric report: {str(e)}"
        )


@router.post("/metrics/upload", response_model=ReportRunResponse)
async def run_report_from_upload(
    settings: SettingsDep,
    file: UploadFile = File(..., description="CSV with id, created_at, updated_at, metric, category"),
    runTimestamp: datetime = Form(...),
    cutoff: Optional[datetime] = Form(default=None),
    includeRows: bool = Form(default=False),
    limit: Optional[int] = Form(default=None, ge=1),
) -> ReportRunResponse:
    """
    Run the metric report over an uploaded CSV snapshot.
    """
    try:
        config = ReportConfig.from_settings(settings, runTimestamp, cutoff=cutoff).validate()

        df, errors = load_observations_csv(file.file)
        if errors:
            _raise_validation_errors(errors)

        result = run_metric_report(df, config)
        logger.info(f"Uploaded report run ({file.filename}) produced {result.row_count} rows")
        return _build_response(result, includeRows, limit)

    except HTTPException:
        raise
    except ReportConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Error running metric report from upload")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to run metric report: {str(e)}"
        )


@router.get("/metrics/categories", response_model=List[CategorySummary])
async def list_categories(
    db: DBSessionDep,
    settings: SettingsDep,
    cutoff: Optional[datetime] = Query(default=None, description="Defaults to REPORT_CUTOFF"),
) -> List[CategorySummary]:
    """
    Category statistics for observations created at or after the cutoff.
    """
    try:
        boundary = normalize_cutoff(cutoff if cutoff is not None else settings.report_cutoff)
        df, errors = await fetch_observations(settings.observation_table, boundary, conn=db)
        if errors:
            _raise_validation_errors(errors)

        stats = compute_category_statistics(prepare_observations(df, boundary))
        return summarize_categories(stats)

    except HTTPException:
        raise
    except ReportConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Error listing category statistics")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to list category statistics: {str(e)}"
        )


@router.get("/health")
async def health_check() -> Dict[str, str]:
    """
    Liveness probe for the report service.
    """
    return {"status": "healthy"}
