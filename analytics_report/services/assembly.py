"""
Report Assembly Service

Final stage of the metric report: joins every upstream frame back onto the
observations, derives the display columns and computes the window functions
that need the whole filtered set (global ranks, NTILEs, cumulative
distribution).

Join keys:
- category statistics  -> category
- daily windows        -> (category, obs_date)
- weekly windows       -> (category, obs_iso_year, obs_week)
- monthly windows      -> (category, obs_year, obs_month)
- seasonal factors     -> (category, obs_month)

Every ratio divides through _safe_divide, so a zero or null denominator
yields a null field instead of an error. Classification runs on unrounded
values; rounding is applied last and only to display columns.
"""

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import List

import numpy as np
import pandas as pd

from analytics_report.services.category_stats import require_category_statistics
from analytics_report.services.classification import (
    age_bands,
    apply_outlier_flags,
    apply_performance_labels,
    deviation_bands,
    quartile_bands,
    size_bands,
    status_labels,
    volume_bands,
)
from analytics_report.services.ingestion import normalize_timestamp
from analytics_report.services.windowing import ntile, ranking_columns

logger = logging.getLogger(__name__)


# =============================================================================
# Output Layout
# =============================================================================

DAILY_JOIN_COLUMNS = {
    'daily_count': 'daily_count',
    'daily_sum': 'daily_sum',
    'daily_avg': 'daily_avg',
    'cumulative_sum': 'cumulative_sum',
    'cumulative_count': 'cumulative_count',
    'moving_avg_short': 'moving_avg_7',
    'moving_std_short': 'moving_std_7',
    'moving_avg_long': 'moving_avg_30',
    'moving_std_long': 'moving_std_30',
    'rolling_avg_anomaly': 'rolling_avg_14',
    'rolling_std_anomaly': 'rolling_std_14',
    'anomaly_flag': 'anomaly_flag',
}

WEEKLY_JOIN_COLUMNS = ['weekly_count', 'weekly_sum', 'weekly_avg', 'weekly_growth_rate']

MONTHLY_JOIN_COLUMNS = [
    'monthly_count',
    'monthly_sum',
    'monthly_avg',
    'prev_month_avg',
    'month_delta',
    'growth_rate',
    'forecast_next',
    'trend_direction',
]

REPORT_COLUMNS: List[str] = [
    # identity / calendar
    'id', 'category', 'metric', 'created_at', 'updated_at', 'obs_date',
    'obs_year', 'obs_month', 'obs_week', 'obs_day', 'obs_quarter',
    'obs_day_of_week', 'obs_day_name', 'obs_month_name', 'obs_hour', 'is_weekend',
    # run-relative
    'run_date', 'run_year', 'run_month', 'run_week', 'run_day',
    'days_since_created', 'days_since_updated', 'months_since_created',
    'is_current_month', 'is_current_year', 'age_band',
    # category statistics
    'category_count', 'category_mean', 'category_min', 'category_max',
    'category_stddev', 'category_p25', 'category_median', 'category_p75',
    'category_iqr',
    # ratios
    'metric_to_mean_ratio', 'metric_to_median_ratio', 'metric_to_max_ratio',
    'deviation_from_mean', 'z_score', 'quartile_position', 'range_position',
    'share_of_category_pct',
    # bands
    'quartile_band', 'size_band', 'deviation_band',
    # daily
    'daily_count', 'daily_sum', 'daily_avg', 'cumulative_sum', 'cumulative_count',
    'moving_avg_7', 'moving_std_7', 'moving_avg_30', 'moving_std_30',
    'rolling_avg_14', 'rolling_std_14', 'metric_to_ma7_ratio',
    'metric_to_ma30_ratio', 'volatility_7_pct', 'daily_share_of_cumulative',
    'volume_band', 'anomaly_flag',
    # weekly
    'weekly_count', 'weekly_sum', 'weekly_avg', 'weekly_growth_rate',
    # monthly
    'monthly_count', 'monthly_sum', 'monthly_avg', 'prev_month_avg',
    'month_delta', 'growth_rate', 'growth_rate_pct', 'forecast_next',
    'trend_direction', 'seasonal_factor', 'seasonal_index',
    'monthly_share_of_category_pct',
    # classification
    'performance', 'outlier_flag', 'status',
    # in-category windows
    'category_row_number', 'category_rank', 'category_percent_rank',
    # global windows
    'global_row_number', 'global_rank', 'global_dense_rank', 'global_decile',
    'global_quartile', 'global_cume_dist', 'global_percent_rank',
]

REPORT_SORT_ORDER = ['category', 'obs_date', 'created_at', 'id']

# Rounded to 2 decimals
VALUE_COLUMNS = [
    'category_mean', 'category_min', 'category_max', 'category_stddev',
    'category_p25', 'category_median', 'category_p75', 'category_iqr',
    'metric_to_mean_ratio', 'metric_to_median_ratio', 'metric_to_max_ratio',
    'deviation_from_mean', 'z_score', 'quartile_position', 'range_position',
    'share_of_category_pct', 'daily_sum', 'daily_avg', 'cumulative_sum',
    'moving_avg_7', 'moving_std_7', 'moving_avg_30', 'moving_std_30',
    'rolling_avg_14', 'rolling_std_14', 'metric_to_ma7_ratio',
    'metric_to_ma30_ratio', 'volatility_7_pct', 'weekly_sum', 'weekly_avg',
    'monthly_sum', 'monthly_avg', 'prev_month_avg', 'month_delta',
    'growth_rate_pct', 'forecast_next', 'seasonal_factor', 'seasonal_index',
    'monthly_share_of_category_pct',
]

# Rounded to 4 decimals
FRACTION_COLUMNS = [
    'growth_rate', 'weekly_growth_rate', 'daily_share_of_cumulative',
    'category_percent_rank', 'global_cume_dist', 'global_percent_rank',
]


# =============================================================================
# Helpers
# =============================================================================


def _safe_divide(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    """Division that yields NaN where the denominator is zero or null."""
    return numerator / denominator.where(denominator != 0)


def round_half_away(values: pd.Series, places: int) -> pd.Series:
    """
    Round half away from zero, like SQL ROUND(numeric, places).

    Each value is rounded on its shortest decimal form, so 1.005 rounds to
    1.01 even though the binary float sits just below the tie. pandas' own
    round() is banker's rounding, which disagrees on ties. Null and
    non-finite values pass through unchanged.

    Example:
        >>> round_half_away(pd.Series([0.125, -0.125]), 2).tolist()
        [0.13, -0.13]
    """
    quantum = Decimal(1).scaleb(-places)
    numeric = values.astype('float64')
    finite = np.isfinite(numeric)
    rounded = numeric.copy()
    rounded[finite] = numeric[finite].map(
        lambda value: float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))
    )
    return rounded


def empty_report_frame() -> pd.DataFrame:
    """The report layout with no rows, returned when nothing passes the cutoff."""
    return pd.DataFrame(columns=REPORT_COLUMNS)


# =============================================================================
# Column Groups
# =============================================================================


def _add_calendar_labels(report: pd.DataFrame) -> None:
    report['obs_day_name'] = report['created_at'].dt.day_name()
    report['obs_month_name'] = report['created_at'].dt.month_name()
    report['is_weekend'] = report['obs_day_of_week'] >= 6


def _add_run_relative(report: pd.DataFrame, run_ts: pd.Timestamp) -> None:
    run_date = run_ts.normalize()
    report['run_date'] = run_date
    report['run_year'] = run_date.year
    report['run_month'] = run_date.month
    report['run_week'] = run_date.isocalendar()[1]
    report['run_day'] = run_date.day

    report['days_since_created'] = (run_date - report['obs_date']).dt.days.astype('int64')
    report['days_since_updated'] = (run_date - report['updated_at'].dt.normalize()).dt.days.astype('Int64')
    report['months_since_created'] = (
        (run_date.year - report['obs_year']) * 12 + (run_date.month - report['obs_month'])
    ).astype('int64')
    report['is_current_year'] = report['obs_year'] == run_date.year
    report['is_current_month'] = report['is_current_year'] & (report['obs_month'] == run_date.month)
    report['age_band'] = age_bands(report['days_since_created'])


def _add_category_ratios(report: pd.DataFrame) -> None:
    metric = report['metric']
    mean = report['category_mean']
    p25 = report['category_p25']
    median = report['category_median']
    p75 = report['category_p75']

    report['category_iqr'] = p75 - p25
    report['metric_to_mean_ratio'] = _safe_divide(metric, mean)
    report['metric_to_median_ratio'] = _safe_divide(metric, median)
    report['metric_to_max_ratio'] = _safe_divide(metric, report['category_max'])
    report['deviation_from_mean'] = metric - mean
    report['z_score'] = _safe_divide(metric - mean, report['category_stddev'])
    report['quartile_position'] = _safe_divide(metric - p25, p75 - p25)
    report['range_position'] = _safe_divide(
        metric - report['category_min'], report['category_max'] - report['category_min']
    )
    report['share_of_category_pct'] = _safe_divide(100.0 * metric, report['category_sum'])

    report['quartile_band'] = quartile_bands(metric, p25, median, p75)
    report['size_band'] = size_bands(metric, p25, p75)
    report['deviation_band'] = deviation_bands(report['z_score'])


def _add_daily_ratios(report: pd.DataFrame) -> None:
    report['metric_to_ma7_ratio'] = _safe_divide(report['metric'], report['moving_avg_7'])
    report['metric_to_ma30_ratio'] = _safe_divide(report['metric'], report['moving_avg_30'])
    report['volatility_7_pct'] = _safe_divide(100.0 * report['moving_std_7'], report['moving_avg_7'])
    report['daily_share_of_cumulative'] = _safe_divide(report['daily_sum'], report['cumulative_sum'])
    report['volume_band'] = volume_bands(report['daily_count'])


def _add_monthly_ratios(report: pd.DataFrame) -> None:
    report['growth_rate_pct'] = report['growth_rate'] * 100.0
    report['seasonal_index'] = _safe_divide(report['seasonal_factor'], report['category_mean'])
    report['monthly_share_of_category_pct'] = _safe_divide(
        100.0 * report['monthly_sum'], report['category_sum']
    )


def _add_classification(report: pd.DataFrame) -> None:
    report['performance'] = apply_performance_labels(report['metric'], report['category_mean'])
    report['outlier_flag'] = apply_outlier_flags(
        report['metric'], report['category_mean'], report['category_stddev']
    )
    report['status'] = status_labels(report['outlier_flag'], report['anomaly_flag'])


def _add_window_functions(report: pd.DataFrame) -> None:
    in_category = ranking_columns(report, ['created_at', 'id'], partition_by=['category'])
    report['category_row_number'] = in_category['row_number']

    by_metric = ranking_columns(
        report, ['metric'], ascending=False, partition_by=['category'], tiebreak=['created_at', 'id']
    )
    report['category_rank'] = by_metric['rank']
    report['category_percent_rank'] = by_metric['percent_rank']

    report['global_row_number'] = ranking_columns(report, ['category', 'created_at', 'id'])['row_number']

    global_metric = ranking_columns(report, ['category', 'metric'], tiebreak=['created_at', 'id'])
    report['global_rank'] = global_metric['rank']
    report['global_dense_rank'] = global_metric['dense_rank']
    report['global_decile'] = ntile(global_metric['row_number'], global_metric['partition_size'], 10)
    report['global_quartile'] = ntile(global_metric['row_number'], global_metric['partition_size'], 4)
    report['global_cume_dist'] = global_metric['cume_dist']
    report['global_percent_rank'] = global_metric['percent_rank']


# =============================================================================
# Assembly
# =============================================================================


def assemble_report(
    observations: pd.DataFrame,
    category_stats: pd.DataFrame,
    daily: pd.DataFrame,
    weekly: pd.DataFrame,
    monthly: pd.DataFrame,
    seasonal: pd.DataFrame,
    run_timestamp: datetime,
) -> pd.DataFrame:
    """
    Build the final report, one row per filtered observation.

    Args:
        observations: Filtered observations with calendar fields.
        category_stats: Output of compute_category_statistics (indexed by category).
        daily: Daily windows labelled with anomaly_flag.
        weekly: Weekly windows.
        monthly: Monthly windows labelled with trend_direction.
        seasonal: Seasonal factors per (category, obs_month).
        run_timestamp: Injected run time every run-relative column derives from.

    Returns:
        DataFrame with REPORT_COLUMNS sorted by (category, obs_date, created_at, id).

    Raises:
        MissingCategoryStatisticsError: If a category has no statistics row.
    """
    run_ts = normalize_timestamp(run_timestamp, 'run_timestamp')

    if observations.empty:
        return empty_report_frame()

    require_category_statistics(category_stats, observations['category'].unique())

    report = observations.merge(
        category_stats.reset_index(), on='category', how='left', validate='many_to_one'
    )
    report = report.merge(
        daily[['category', 'obs_date', *DAILY_JOIN_COLUMNS]].rename(columns=DAILY_JOIN_COLUMNS),
        on=['category', 'obs_date'],
        how='left',
        validate='many_to_one',
    )
    report = report.merge(
        weekly[['category', 'obs_iso_year', 'obs_week', *WEEKLY_JOIN_COLUMNS]],
        on=['category', 'obs_iso_year', 'obs_week'],
        how='left',
        validate='many_to_one',
    )
    report = report.merge(
        monthly[['category', 'obs_year', 'obs_month', *MONTHLY_JOIN_COLUMNS]],
        on=['category', 'obs_year', 'obs_month'],
        how='left',
        validate='many_to_one',
    )
    report = report.merge(
        seasonal, on=['category', 'obs_month'], how='left', validate='many_to_one'
    )

    _add_calendar_labels(report)
    _add_run_relative(report, run_ts)
    _add_category_ratios(report)
    _add_daily_ratios(report)
    _add_monthly_ratios(report)
    _add_classification(report)
    _add_window_functions(report)

    for column in VALUE_COLUMNS:
        report[column] = round_half_away(report[column], 2)
    for column in FRACTION_COLUMNS:
        report[column] = round_half_away(report[column], 4)

    report = report.sort_values(REPORT_SORT_ORDER, kind='mergesort').reset_index(drop=True)
    logger.info(
        f"Assembled report: {len(report)} rows across {report['category'].nunique()} categories"
    )
    return report[REPORT_COLUMNS]
