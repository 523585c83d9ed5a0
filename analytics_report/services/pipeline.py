"""
Metric Report Pipeline

Runs the report stages in dependency order over one observation snapshot:

    filter & calendar -> category statistics ─┐
                      -> daily/weekly/monthly roll-ups -> windows -> labels
                                                                      └─> assembly

Configuration is validated before any stage touches data. A run either
returns the full ReportResult or raises; there is no partial output.
Given the same snapshot and run timestamp the report is identical, so a
re-run is a no-op for downstream consumers.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from analytics_report.core.config import Settings
from analytics_report.core.database import execute_many
from analytics_report.models.enums import AnomalyFlag, OutlierFlag
from analytics_report.models.schemas import CategorySummary
from analytics_report.services.assembly import assemble_report, empty_report_frame
from analytics_report.services.category_stats import compute_category_statistics
from analytics_report.services.classification import (
    label_daily_windows,
    label_monthly_windows,
)
from analytics_report.services.ingestion import (
    normalize_cutoff,
    normalize_timestamp,
    prepare_observations,
)
from analytics_report.services.time_buckets import (
    aggregate_daily,
    aggregate_monthly,
    aggregate_weekly,
)
from analytics_report.services.windowing import (
    DEFAULT_ANOMALY_WINDOW,
    DEFAULT_LONG_WINDOW,
    DEFAULT_SHORT_WINDOW,
    compute_daily_windows,
    compute_monthly_windows,
    compute_seasonal_factors,
    compute_weekly_windows,
    validate_window_size,
)
from analytics_report.sql.report_queries import REPORT_SINK_COLUMNS, get_report_upsert_query

logger = logging.getLogger(__name__)

DEFAULT_CUTOFF = datetime(2023, 1, 1)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class ReportConfig:
    """
    Parameters of one report run.

    run_timestamp is always supplied by the caller; the pipeline never reads
    the clock.
    """
    run_timestamp: datetime
    cutoff: datetime = DEFAULT_CUTOFF
    short_window: int = DEFAULT_SHORT_WINDOW
    long_window: int = DEFAULT_LONG_WINDOW
    anomaly_window: int = DEFAULT_ANOMALY_WINDOW

    def validate(self) -> 'ReportConfig':
        """
        Check every parameter.

        Raises:
            ReportConfigurationError: On a bad timestamp or window size.
        """
        normalize_timestamp(self.run_timestamp, 'run_timestamp')
        normalize_cutoff(self.cutoff)
        validate_window_size(self.short_window, 'short_window')
        validate_window_size(self.long_window, 'long_window')
        validate_window_size(self.anomaly_window, 'anomaly_window')
        return self

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        run_timestamp: datetime,
        **overrides: Any,
    ) -> 'ReportConfig':
        """Build a config from Settings; None-valued overrides are ignored."""
        values = {
            'cutoff': settings.report_cutoff,
            'short_window': settings.short_window,
            'long_window': settings.long_window,
            'anomaly_window': settings.anomaly_window,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(run_timestamp=run_timestamp, **values)


@dataclass
class ReportResult:
    """The assembled report plus every intermediate frame it was built from."""
    report: pd.DataFrame
    observations: pd.DataFrame
    category_stats: pd.DataFrame
    daily: pd.DataFrame
    weekly: pd.DataFrame
    monthly: pd.DataFrame
    seasonal: pd.DataFrame
    config: Optional[ReportConfig] = None
    rows_read: int = 0

    @property
    def row_count(self) -> int:
        return len(self.report)

    @property
    def categories(self) -> List[str]:
        return sorted(self.category_stats.index.tolist())


# =============================================================================
# PIPELINE
# =============================================================================

def run_metric_report(observations: pd.DataFrame, config: ReportConfig) -> ReportResult:
    """
    Run every report stage over an observation snapshot.

    Args:
        observations: Normalized snapshot (see ingestion.validate_snapshot).
        config: Run parameters.

    Returns:
        ReportResult with the final report and intermediate frames.

    Raises:
        ReportConfigurationError: If config is invalid (before any processing).
        MissingCategoryStatisticsError: If assembly finds a category without statistics.
    """
    config.validate()
    rows_read = len(observations)

    filtered = prepare_observations(observations, config.cutoff)
    logger.info(f"Stage filter: {len(filtered)} of {rows_read} observations at or after {config.cutoff}")

    stats = compute_category_statistics(filtered)
    logger.info(f"Stage category statistics: {len(stats)} categories")

    if filtered.empty:
        logger.warning("No observations passed the cutoff; returning an empty report")
        empty = pd.DataFrame()
        return ReportResult(
            report=empty_report_frame(),
            observations=filtered,
            category_stats=stats,
            daily=empty,
            weekly=empty,
            monthly=empty,
            seasonal=empty,
            config=config,
            rows_read=rows_read,
        )

    daily = compute_daily_windows(
        aggregate_daily(filtered),
        short_window=config.short_window,
        long_window=config.long_window,
        anomaly_window=config.anomaly_window,
    )
    weekly = compute_weekly_windows(aggregate_weekly(filtered))
    monthly = compute_monthly_windows(aggregate_monthly(filtered))
    seasonal = compute_seasonal_factors(monthly)
    logger.info(
        f"Stage windows: {len(daily)} daily, {len(weekly)} weekly, {len(monthly)} monthly buckets"
    )

    daily = label_daily_windows(daily)
    monthly = label_monthly_windows(monthly)
    anomalous_days = int((daily['anomaly_flag'] == AnomalyFlag.ANOMALY.value).sum())
    logger.info(f"Stage classification: {anomalous_days} anomalous category-days")

    report = assemble_report(
        filtered, stats, daily, weekly, monthly, seasonal, config.run_timestamp
    )

    return ReportResult(
        report=report,
        observations=filtered,
        category_stats=stats,
        daily=daily,
        weekly=weekly,
        monthly=monthly,
        seasonal=seasonal,
        config=config,
        rows_read=rows_read,
    )


# =============================================================================
# RESULT CONVERSION
# =============================================================================

def _optional_float(value: Any) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def summarize_categories(
    category_stats: pd.DataFrame,
    report: Optional[pd.DataFrame] = None,
    daily: Optional[pd.DataFrame] = None,
) -> List[CategorySummary]:
    """
    Summarize each category for API responses.

    Outlier and anomalous-day counts come from the report and labelled daily
    windows when given; statistics-only callers get zeros.
    """
    if category_stats.empty:
        return []

    outliers: Dict[str, int] = {}
    if report is not None and not report.empty:
        is_outlier = report['outlier_flag'] == OutlierFlag.OUTLIER.value
        outliers = is_outlier.groupby(report['category']).sum().astype(int).to_dict()

    anomalous_days: Dict[str, int] = {}
    if daily is not None and not daily.empty:
        is_anomaly = daily['anomaly_flag'] == AnomalyFlag.ANOMALY.value
        anomalous_days = is_anomaly.groupby(daily['category']).sum().astype(int).to_dict()

    summaries = []
    for category, row in category_stats.iterrows():
        summaries.append(CategorySummary(
            category=str(category),
            count=int(row['category_count']),
            mean=float(row['category_mean']),
            min=float(row['category_min']),
            max=float(row['category_max']),
            stddev=_optional_float(row['category_stddev']),
            p25=float(row['category_p25']),
            median=float(row['category_median']),
            p75=float(row['category_p75']),
            outliers=outliers.get(category, 0),
            anomalousDays=anomalous_days.get(category, 0),
        ))
    return summaries


def build_category_summaries(result: ReportResult) -> List[CategorySummary]:
    """Category summaries for a finished run."""
    return summarize_categories(result.category_stats, result.report, result.daily)


def _to_db_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, np.generic):
        return value.item()
    return value


def report_sink_records(report: pd.DataFrame, run_date: date) -> List[tuple]:
    """
    Convert report rows into upsert parameter tuples ($1 run_date, then REPORT_SINK_COLUMNS).
    """
    sink = report[REPORT_SINK_COLUMNS].copy()
    sink['obs_date'] = pd.to_datetime(sink['obs_date']).dt.date
    records = []
    for row in sink.itertuples(index=False, name=None):
        records.append((run_date, *(_to_db_value(v) for v in row)))
    return records


async def persist_report_rows(report: pd.DataFrame, run_date: date, table_name: str) -> int:
    """
    Bulk upsert report rows for a run date in one transaction.

    Returns:
        Number of rows written.

    Raises:
        asyncpg.PostgresError: If the write fails; nothing is committed.
    """
    if report.empty:
        return 0
    records = report_sink_records(report, run_date)
    await execute_many(get_report_upsert_query(table_name), records)
    logger.info(f"Persisted {len(records)} report rows to {table_name} for {run_date}")
    return len(records)
