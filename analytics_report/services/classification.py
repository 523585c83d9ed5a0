"""
Classification Engine Service

Turns statistics and window outputs into the labels the report exposes:
performance vs category mean, outlier and anomaly flags, trend direction,
and the display bands used by the assembled report.

Rules:
- Performance: 'above' / 'equal' / 'below' the category mean. 'equal' is
  strict float equality and rarely fires on real data; that is intended.
- Outlier: |metric - category_mean| > 2 x category_stddev.
- Anomaly (per category and day): |daily_sum - rolling_avg| > 3 x rolling_stddev.
- Trend: sign of the month-over-month delta, strict comparisons with zero.

A null stddev (fewer than two samples) never produces a flag: the
comparison is guarded and the label falls back to 'Normal'.

Every rule exists in a scalar form for single records and a vectorized
apply_* / *_bands form used by the report over whole frames. Both forms must
agree; the tests check them against each other.
"""

import math
from typing import Optional

import numpy as np
import pandas as pd

from analytics_report.models.enums import (
    AgeBand,
    AnomalyFlag,
    DeviationBand,
    OutlierFlag,
    Performance,
    QuartileBand,
    ReportStatus,
    SizeBand,
    TrendDirection,
    VolumeBand,
)


# =============================================================================
# Thresholds
# =============================================================================

# Outlier when deviation from the category mean exceeds this many stddevs
OUTLIER_SIGMA: float = 2.0

# Anomaly when the daily sum deviates from its rolling baseline by this many stddevs
ANOMALY_SIGMA: float = 3.0

# Daily observation counts for the volume bands
HIGH_VOLUME_MIN_DAILY: int = 10
MEDIUM_VOLUME_MIN_DAILY: int = 3

# Absolute z-score limits for the deviation bands
TYPICAL_MAX_ABS_Z: float = 1.0
UNUSUAL_MAX_ABS_Z: float = 2.0

# Observation age limits (days) for the age bands
RECENT_MAX_DAYS: int = 7
CURRENT_MAX_DAYS: int = 30
AGED_MAX_DAYS: int = 90


def _is_null(value: Optional[float]) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def _select(conditions, choices, default, index) -> pd.Series:
    values = np.select(
        [np.asarray(c, dtype=bool) for c in conditions],
        [choice.value for choice in choices],
        default=default.value,
    )
    return pd.Series(values, index=index, dtype=object)


# =============================================================================
# Scalar Rules
# =============================================================================


def classify_performance(metric: float, category_mean: float) -> str:
    """
    Compare a metric with its category mean.

    Example:
        >>> [classify_performance(m, 20.0) for m in (10.0, 20.0, 30.0)]
        ['below', 'equal', 'above']
    """
    if metric > category_mean:
        return Performance.ABOVE.value
    if metric == category_mean:
        return Performance.EQUAL.value
    return Performance.BELOW.value


def classify_outlier(
    metric: float,
    category_mean: float,
    category_stddev: Optional[float],
) -> str:
    """
    Flag observations more than OUTLIER_SIGMA stddevs from the category mean.

    'Normal' whenever the stddev is null (single-observation category).
    """
    if _is_null(category_stddev):
        return OutlierFlag.NORMAL.value
    if abs(metric - category_mean) > OUTLIER_SIGMA * category_stddev:
        return OutlierFlag.OUTLIER.value
    return OutlierFlag.NORMAL.value


def classify_anomaly(
    daily_sum: float,
    rolling_avg: float,
    rolling_stddev: Optional[float],
) -> str:
    """
    Flag days whose sum is more than ANOMALY_SIGMA stddevs from the rolling baseline.

    'Normal' whenever the rolling stddev is null (first day of a category).
    """
    if _is_null(rolling_stddev) or _is_null(rolling_avg):
        return AnomalyFlag.NORMAL.value
    if abs(daily_sum - rolling_avg) > ANOMALY_SIGMA * rolling_stddev:
        return AnomalyFlag.ANOMALY.value
    return AnomalyFlag.NORMAL.value


def classify_trend(month_delta: Optional[float]) -> str:
    """
    Trend direction from the month-over-month delta; a null delta is 'stable'.
    """
    if _is_null(month_delta):
        return TrendDirection.STABLE.value
    if month_delta > 0:
        return TrendDirection.INCREASING.value
    if month_delta < 0:
        return TrendDirection.DECREASING.value
    return TrendDirection.STABLE.value


# =============================================================================
# Vectorized Rules
# =============================================================================


def apply_performance_labels(metric: pd.Series, category_mean: pd.Series) -> pd.Series:
    """Vectorized classify_performance."""
    return _select(
        [metric > category_mean, metric == category_mean],
        [Performance.ABOVE, Performance.EQUAL],
        Performance.BELOW,
        metric.index,
    )


def apply_outlier_flags(
    metric: pd.Series,
    category_mean: pd.Series,
    category_stddev: pd.Series,
) -> pd.Series:
    """Vectorized classify_outlier; NaN stddev compares False and stays 'Normal'."""
    deviation = (metric - category_mean).abs()
    return _select(
        [(deviation > OUTLIER_SIGMA * category_stddev).fillna(False)],
        [OutlierFlag.OUTLIER],
        OutlierFlag.NORMAL,
        metric.index,
    )


def apply_anomaly_flags(
    daily_sum: pd.Series,
    rolling_avg: pd.Series,
    rolling_stddev: pd.Series,
) -> pd.Series:
    """Vectorized classify_anomaly."""
    deviation = (daily_sum - rolling_avg).abs()
    return _select(
        [(deviation > ANOMALY_SIGMA * rolling_stddev).fillna(False)],
        [AnomalyFlag.ANOMALY],
        AnomalyFlag.NORMAL,
        daily_sum.index,
    )


def apply_trend_directions(month_delta: pd.Series) -> pd.Series:
    """Vectorized classify_trend."""
    return _select(
        [(month_delta > 0).fillna(False), (month_delta < 0).fillna(False)],
        [TrendDirection.INCREASING, TrendDirection.DECREASING],
        TrendDirection.STABLE,
        month_delta.index,
    )


# =============================================================================
# Display Bands
# =============================================================================


def quartile_bands(
    metric: pd.Series,
    p25: pd.Series,
    median: pd.Series,
    p75: pd.Series,
) -> pd.Series:
    """
    Quartile position of each metric within its category.

    The exact-match Median branch is evaluated first.
    """
    return _select(
        [metric == median, metric < p25, metric < median, metric <= p75],
        [QuartileBand.MEDIAN, QuartileBand.BOTTOM, QuartileBand.LOWER_MIDDLE, QuartileBand.UPPER_MIDDLE],
        QuartileBand.TOP,
        metric.index,
    )


def size_bands(metric: pd.Series, p25: pd.Series, p75: pd.Series) -> pd.Series:
    """Large above p75, Small below p25, Medium otherwise."""
    return _select(
        [metric > p75, metric < p25],
        [SizeBand.LARGE, SizeBand.SMALL],
        SizeBand.MEDIUM,
        metric.index,
    )


def volume_bands(daily_count: pd.Series) -> pd.Series:
    """Band the category's observation count on the observation's day."""
    return _select(
        [daily_count >= HIGH_VOLUME_MIN_DAILY, daily_count >= MEDIUM_VOLUME_MIN_DAILY],
        [VolumeBand.HIGH, VolumeBand.MEDIUM],
        VolumeBand.LOW,
        daily_count.index,
    )


def deviation_bands(z_score: pd.Series) -> pd.Series:
    """Band the absolute z-score; null z-scores are 'Insufficient Data'."""
    abs_z = z_score.abs()
    return _select(
        [z_score.isna(), abs_z <= TYPICAL_MAX_ABS_Z, abs_z <= UNUSUAL_MAX_ABS_Z],
        [DeviationBand.INSUFFICIENT_DATA, DeviationBand.TYPICAL, DeviationBand.UNUSUAL],
        DeviationBand.EXTREME,
        z_score.index,
    )


def age_bands(days_since_created: pd.Series) -> pd.Series:
    """Band observation age in days relative to the run timestamp."""
    return _select(
        [
            days_since_created <= RECENT_MAX_DAYS,
            days_since_created <= CURRENT_MAX_DAYS,
            days_since_created <= AGED_MAX_DAYS,
        ],
        [AgeBand.RECENT, AgeBand.CURRENT, AgeBand.AGED],
        AgeBand.STALE,
        days_since_created.index,
    )


def status_labels(outlier_flag: pd.Series, anomaly_flag: pd.Series) -> pd.Series:
    """Critical when both flags fire, Warning when one does, OK otherwise."""
    is_outlier = outlier_flag == OutlierFlag.OUTLIER.value
    is_anomaly = anomaly_flag == AnomalyFlag.ANOMALY.value
    return _select(
        [is_outlier & is_anomaly, is_outlier | is_anomaly],
        [ReportStatus.CRITICAL, ReportStatus.WARNING],
        ReportStatus.OK,
        outlier_flag.index,
    )


# =============================================================================
# Bucket Labels
# =============================================================================


def label_daily_windows(daily: pd.DataFrame) -> pd.DataFrame:
    """Copy of the daily windows frame with anomaly_flag per (category, day)."""
    out = daily.copy()
    out['anomaly_flag'] = apply_anomaly_flags(
        out['daily_sum'], out['rolling_avg_anomaly'], out['rolling_std_anomaly']
    )
    return out


def label_monthly_windows(monthly: pd.DataFrame) -> pd.DataFrame:
    """Copy of the monthly windows frame with trend_direction per (category, month)."""
    out = monthly.copy()
    out['trend_direction'] = apply_trend_directions(out['month_delta'])
    return out
