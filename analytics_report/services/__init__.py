"""
Report Services Module

Business logic for the metric report and the customer risk report. Every
stage is a stateless function over pandas frames so it can be tested without
a database.

Services:
- ingestion: snapshot loading (CSV, BigQuery, PostgreSQL), validation, cutoff filter, calendar fields
- category_stats: per-category count/mean/stddev/percentiles
- time_buckets: daily, weekly and monthly roll-ups
- windowing: trailing windows, lag/growth/forecast, SQL ranking functions
- classification: performance, outlier, anomaly and trend labels plus display bands
- assembly: final join, derived columns and global window functions
- pipeline: stage orchestration and persistence of report rows
- risk_report: customer risk report and monthly cohorts

All services are consumed by the API layer (analytics_report/api/) and jobs.
"""

# =============================================================================
# Ingestion Service Exports
# =============================================================================

from analytics_report.services.ingestion import (
    OBSERVATION_REQUIRED_COLUMNS,
    CALENDAR_COLUMNS,
    normalize_cutoff,
    normalize_timestamp,
    validate_snapshot,
    prepare_observations,
    load_observations_csv,
    load_observations_bigquery,
    fetch_observations,
)

# =============================================================================
# Statistics, Buckets and Windows
# =============================================================================

from analytics_report.services.category_stats import (
    CATEGORY_STAT_COLUMNS,
    compute_category_statistics,
    percentile_cont,
)
from analytics_report.services.time_buckets import (
    aggregate_daily,
    aggregate_weekly,
    aggregate_monthly,
)
from analytics_report.services.windowing import (
    trailing_window_aggregate,
    lag_values,
    lag_delta,
    period_over_period_growth,
    forecast_next_period,
    ranking_columns,
    ntile,
)

# =============================================================================
# Classification and Assembly
# =============================================================================

from analytics_report.services.classification import (
    classify_performance,
    classify_outlier,
    classify_anomaly,
    classify_trend,
)
from analytics_report.services.assembly import REPORT_COLUMNS, assemble_report

# =============================================================================
# Pipeline Exports
# =============================================================================

from analytics_report.services.pipeline import (
    ReportConfig,
    ReportResult,
    run_metric_report,
    build_category_summaries,
    summarize_categories,
    persist_report_rows,
)

# =============================================================================
# Risk Report Exports
# =============================================================================

from analytics_report.services.risk_report import (
    build_customer_risk_report,
    aggregate_monthly_cohorts,
    run_customer_risk_report,
)

__all__ = [
    'OBSERVATION_REQUIRED_COLUMNS',
    'CALENDAR_COLUMNS',
    'normalize_cutoff',
    'normalize_timestamp',
    'validate_snapshot',
    'prepare_observations',
    'load_observations_csv',
    'load_observations_bigquery',
    'fetch_observations',
    'CATEGORY_STAT_COLUMNS',
    'compute_category_statistics',
    'percentile_cont',
    'aggregate_daily',
    'aggregate_weekly',
    'aggregate_monthly',
    'trailing_window_aggregate',
    'lag_values',
    'lag_delta',
    'period_over_period_growth',
    'forecast_next_period',
    'ranking_columns',
    'ntile',
    'classify_performance',
    'classify_outlier',
    'classify_anomaly',
    'classify_trend',
    'REPORT_COLUMNS',
    'assemble_report',
    'ReportConfig',
    'ReportResult',
    'run_metric_report',
    'build_category_summaries',
    'summarize_categories',
    'persist_report_rows',
    'build_customer_risk_report',
    'aggregate_monthly_cohorts',
    'run_customer_risk_report',
]
