"""
Daily Metric Report Export Job.

Runs the metric report over the observation table, writes the full report to
CSV under REPORT_OUTPUT_DIR and upserts the sink columns into the report
table. Each run date is exported once; reruns are skipped unless forced.

Idempotency:
- job_report_state records every completed export keyed by run_date
- force=True re-exports; the upsert keyed by (run_date, id) replaces rows
- The CSV is staged and renamed into place only after the upsert succeeds,
  so a failed run leaves no report file behind
- The run timestamp defaults to the start of run_date, so a forced rerun
  over the same snapshot writes the same rows

Usage:
    from analytics_report.jobs.report_export import export_metric_report

    result = await export_metric_report(date(2026, 10, 19))
    result = await export_metric_report(date(2026, 10, 19), force=True)

See Also:
    - analytics_report/services/pipeline.py: report stages
    - analytics_report/core/config.py: REPORT_OUTPUT_DIR, OBSERVATION_TABLE
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from analytics_report.core.config import Settings, get_settings
from analytics_report.core.database import get_db_pool
from analytics_report.models import SnapshotSource, ValidationError
from analytics_report.services.ingestion import fetch_observations, load_observations_bigquery
from analytics_report.services.pipeline import ReportConfig, persist_report_rows, run_metric_report
from analytics_report.services.risk_report import run_customer_risk_report
from analytics_report.sql.report_queries import (
    get_export_state_exists_query,
    get_export_state_upsert_query,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Report file name format: metric_report_{YYYY-MM-DD}.csv
REPORT_FILE_NAME_TEMPLATE = "metric_report_{date}.csv"

# Risk report file names: customer_risk_{YYYY-MM-DD}.csv, customer_cohorts_{YYYY-MM-DD}.csv
RISK_FILE_NAME_TEMPLATE = "customer_risk_{date}.csv"
COHORT_FILE_NAME_TEMPLATE = "customer_cohorts_{date}.csv"

# Report written here first, renamed into place after the upsert succeeds
STAGED_FILE_NAME_TEMPLATE = ".{name}.partial"


# =============================================================================
# ExportState Model for Idempotency Tracking
# =============================================================================

@dataclass
class ExportState:
    """
    A completed export as recorded in job_report_state.

    Attributes:
        run_date: Date the report was exported for
        run_timestamp: Timestamp the run-relative columns were computed against
        row_count: Number of report rows written
        output_path: CSV file the report was written to
    """
    run_date: date
    run_timestamp: datetime
    row_count: int
    output_path: str


# =============================================================================
# Idempotency Functions
# =============================================================================

async def check_export_exists(run_date: date) -> bool:
    """
    Check whether a report was already exported for run_date.

    Raises:
        asyncpg.PostgresError: If the database query fails
    """
    pool = await get_db_pool()

    async with pool.acquire() as conn:
        row = await conn.fetchrow(get_export_state_exists_query(), run_date)
        return row['exists'] if row else False


async def mark_report_exported(state: ExportState) -> ExportState:
    """
    Record a completed export (upsert, so forced reruns overwrite the state row).

    Raises:
        asyncpg.PostgresError: If the database upsert fails
    """
    pool = await get_db_pool()

    async with pool.acquire() as conn:
        await conn.execute(
            get_export_state_upsert_query(),
            state.run_date,
            state.run_timestamp,
            state.row_count,
            state.output_path,
        )
    return state


# =============================================================================
# Output
# =============================================================================

def write_report_csv(report: pd.DataFrame, output_dir: str, file_name: str) -> Path:
    """
    Write a report frame to output_dir/file_name, creating the directory if needed.

    Returns:
        Path of the written file
    """
    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / file_name
    report.to_csv(path, index=False, date_format='%Y-%m-%d %H:%M:%S')
    logger.info(f"Wrote {len(report)} rows to {path}")
    return path


async def load_snapshot(
    settings: Settings,
    cutoff: datetime,
) -> Tuple[Optional[pd.DataFrame], List[ValidationError], SnapshotSource]:
    """
    Read the observation snapshot from BigQuery when BIGQUERY_PROJECT and
    BIGQUERY_TABLE are both set, otherwise from the PostgreSQL observation table.
    """
    if settings.bigquery_project and settings.bigquery_table:
        df, errors = load_observations_bigquery(
            settings.bigquery_project, settings.bigquery_table, cutoff
        )
        return df, errors, SnapshotSource.BIGQUERY

    df, errors = await fetch_observations(settings.observation_table, cutoff)
    return df, errors, SnapshotSource.POSTGRES


# =============================================================================
# Jobs
# =============================================================================

async def export_metric_report(
    run_date: Optional[date] = None,
    run_timestamp: Optional[datetime] = None,
    force: bool = False,
) -> Dict[str, Any]:
    """
    Run and export the metric report for one date.

    Args:
        run_date: Date to export for (default: today)
        run_timestamp: Timestamp for run-relative columns (default: start of run_date)
        force: If True, export even if run_date was already exported

    Returns:
        Dict with the following keys:
        - success: bool indicating if the export succeeded
        - skipped: bool if the export was skipped
        - reason: Explanation if skipped
        - error: Error message if unsuccessful
        - rows: Number of report rows exported
        - path: CSV file path
        - source: Snapshot source (postgres or bigquery)
        - date: The run date as string
    """
    settings = get_settings()
    target_date = run_date or date.today()
    timestamp = run_timestamp or datetime.combine(target_date, time.min)

    if not force:
        try:
            if await check_export_exists(target_date):
                logger.info(f"Metric report for {target_date} already exported; skipping")
                return {
                    'success': True,
                    'skipped': True,
                    'reason': 'Already exported',
                    'date': str(target_date),
                }
        except Exception as e:
            # Missing state table: proceed, the upserts keep a rerun harmless
            logger.warning(f"Could not check export state for {target_date}: {e}")

    try:
        config = ReportConfig.from_settings(settings, timestamp).validate()
        df, errors, source = await load_snapshot(settings, config.cutoff)
    except Exception as e:
        logger.exception(f"Failed to load observations for {target_date}")
        return {
            'success': False,
            'error': f'Failed to load observations: {str(e)}',
            'date': str(target_date),
        }

    if errors:
        return {
            'success': False,
            'error': '; '.join(f"{err.field}: {err.message}" for err in errors),
            'date': str(target_date),
        }

    logger.info(f"Loaded {len(df)} observations from {source.value} for {target_date}")

    try:
        result = run_metric_report(df, config)
    except Exception as e:
        logger.exception(f"Metric report failed for {target_date}")
        return {
            'success': False,
            'error': f'Report failed: {str(e)}',
            'date': str(target_date),
        }

    if result.report.empty:
        return {
            'success': True,
            'skipped': True,
            'reason': 'No observations at or after cutoff',
            'date': str(target_date),
            'rows': 0,
        }

    file_name = REPORT_FILE_NAME_TEMPLATE.format(date=target_date.isoformat())
    staged: Optional[Path] = None
    try:
        # The CSV only lands under its final name once the rows are persisted
        staged = write_report_csv(
            result.report,
            settings.report_output_dir,
            STAGED_FILE_NAME_TEMPLATE.format(name=file_name),
        )
        rows = await persist_report_rows(result.report, target_date, settings.report_table)
        path = staged.replace(staged.with_name(file_name))
    except Exception as e:
        logger.exception(f"Failed to write metric report for {target_date}")
        if staged is not None:
            staged.unlink(missing_ok=True)
        return {
            'success': False,
            'error': f'Failed to write report: {str(e)}',
            'date': str(target_date),
        }

    try:
        await mark_report_exported(ExportState(
            run_date=target_date,
            run_timestamp=timestamp,
            row_count=rows,
            output_path=str(path),
        ))
    except Exception as e:
        logger.warning(f"Exported {target_date} but failed to record state: {e}")
        return {
            'success': True,
            'warning': f'Exported but failed to record state: {str(e)}',
            'date': str(target_date),
            'rows': rows,
            'path': str(path),
        }

    return {
        'success': True,
        'skipped': False,
        'date': str(target_date),
        'rows': rows,
        'path': str(path),
        'source': source.value,
    }


async def export_customer_risk_report(
    run_date: Optional[date] = None,
    cutoff: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Build the customer risk report and cohorts and write both to CSV.

    Args:
        run_date: Date used in the file names (default: today)
        cutoff: Customer onboarding boundary (default: REPORT_CUTOFF)

    Returns:
        Dict with success, customers, cohorts, paths and error keys
    """
    settings = get_settings()
    target_date = run_date or date.today()

    try:
        frames = await run_customer_risk_report(cutoff or settings.report_cutoff)
    except Exception as e:
        logger.exception(f"Customer risk report failed for {target_date}")
        return {
            'success': False,
            'error': f'Risk report failed: {str(e)}',
            'date': str(target_date),
        }

    written: List[Path] = []
    try:
        written.append(write_report_csv(
            frames['customers'],
            settings.report_output_dir,
            RISK_FILE_NAME_TEMPLATE.format(date=target_date.isoformat()),
        ))
        written.append(write_report_csv(
            frames['cohorts'],
            settings.report_output_dir,
            COHORT_FILE_NAME_TEMPLATE.format(date=target_date.isoformat()),
        ))
    except Exception as e:
        logger.exception(f"Failed to write customer risk report for {target_date}")
        # Both files or neither
        for path in written:
            path.unlink(missing_ok=True)
        return {
            'success': False,
            'error': f'Failed to write risk report: {str(e)}',
            'date': str(target_date),
        }

    return {
        'success': True,
        'date': str(target_date),
        'customers': len(frames['customers']),
        'cohorts': len(frames['cohorts']),
        'paths': [str(path) for path in written],
    }
