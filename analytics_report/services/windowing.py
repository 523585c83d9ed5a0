"""
Windowed analytics over the time-bucketed roll-ups.

All window computations run per category partition ordered by bucket_start.
Frames are ROWS-based: a 7-row window covers the current bucket and the six
buckets before it within the category, regardless of calendar gaps between
them. A sparse category therefore averages over "7 preceding rows", not
"7 preceding days"; this matches the PostgreSQL
ROWS BETWEEN n PRECEDING AND CURRENT ROW frames the report was built on.

Partial windows at the start of a partition use whatever rows exist (a
partition of 3 rows has a 7-row mean equal to the mean of those 3 rows).
Standard deviations are sample (N-1) and null for a 1-row frame.

Key Functions:
- trailing_window_aggregate: the single trailing-window primitive every
  moving average, volatility and rolling baseline is built from
- lag_values / lag_delta / period_over_period_growth / forecast_next_period:
  period comparisons shared by the daily, weekly and monthly roll-ups
- compute_daily_windows / compute_weekly_windows / compute_monthly_windows
- compute_seasonal_factors
- ranking_columns / ntile: SQL window-function equivalents (ROW_NUMBER,
  RANK, DENSE_RANK, PERCENT_RANK, CUME_DIST, NTILE)
"""

import logging
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from analytics_report.core.errors import ReportConfigurationError
from analytics_report.models.enums import WindowStatistic

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Default trailing window sizes in rows
DEFAULT_SHORT_WINDOW: int = 7
DEFAULT_LONG_WINDOW: int = 30
DEFAULT_ANOMALY_WINDOW: int = 14

DEFAULT_PARTITION: str = 'category'
DEFAULT_ORDER: str = 'bucket_start'


# =============================================================================
# Validation
# =============================================================================


def validate_window_size(window: int, name: str = 'window') -> int:
    """
    Check that a window size is a positive integer.

    Raises:
        ReportConfigurationError: For non-integers, booleans and values < 1.
    """
    if isinstance(window, bool) or not isinstance(window, (int, np.integer)):
        raise ReportConfigurationError(f"{name} must be an integer, got {window!r}")
    if window < 1:
        raise ReportConfigurationError(f"{name} must be positive, got {window}")
    return int(window)


def _ordered(frame: pd.DataFrame, partition_column: str, order_column: str) -> pd.DataFrame:
    return frame.sort_values([partition_column, order_column], kind='mergesort')


# =============================================================================
# Trailing Window Primitive
# =============================================================================


def trailing_window_aggregate(
    frame: pd.DataFrame,
    value_column: str,
    window: int,
    statistic: Union[WindowStatistic, str],
    partition_column: str = DEFAULT_PARTITION,
    order_column: str = DEFAULT_ORDER,
) -> pd.Series:
    """
    Aggregate a column over the current row and the preceding window-1 rows.

    Equivalent to
        STAT(value) OVER (PARTITION BY partition ORDER BY order
                          ROWS BETWEEN window-1 PRECEDING AND CURRENT ROW)

    Args:
        frame: Roll-up frame holding partition, order and value columns.
        value_column: Column to aggregate.
        window: Frame size in rows (current row included).
        statistic: One of mean, std, sum, min, max, count.
        partition_column: Column defining independent partitions.
        order_column: Column ordering rows within a partition.

    Returns:
        Series aligned to frame.index.

    Raises:
        ReportConfigurationError: If window is not a positive integer.

    Example:
        >>> daily['ma7'] = trailing_window_aggregate(daily, 'daily_sum', 7, 'mean')
    """
    window = validate_window_size(window)
    stat = WindowStatistic(statistic)

    if frame.empty:
        return pd.Series(index=frame.index, dtype='float64', name=value_column)

    ordered = _ordered(frame, partition_column, order_column)
    rolling = ordered.groupby(partition_column, sort=False)[value_column].rolling(window, min_periods=1)

    if stat is WindowStatistic.STD:
        result = rolling.std(ddof=1)
    else:
        result = getattr(rolling, stat.value)()

    # groupby().rolling() prepends the partition key to the index
    result = result.reset_index(level=0, drop=True)
    return result.reindex(frame.index).rename(value_column)


# =============================================================================
# Period Comparisons
# =============================================================================


def lag_values(
    frame: pd.DataFrame,
    value_column: str,
    periods: int = 1,
    partition_column: str = DEFAULT_PARTITION,
    order_column: str = DEFAULT_ORDER,
) -> pd.Series:
    """
    LAG(value, periods) within each partition; null for the first rows.

    Returns:
        Series aligned to frame.index.
    """
    if frame.empty:
        return pd.Series(index=frame.index, dtype='float64', name=value_column)
    ordered = _ordered(frame, partition_column, order_column)
    shifted = ordered.groupby(partition_column, sort=False)[value_column].shift(periods)
    return shifted.reindex(frame.index)


def lag_delta(
    frame: pd.DataFrame,
    value_column: str,
    partition_column: str = DEFAULT_PARTITION,
    order_column: str = DEFAULT_ORDER,
) -> Tuple[pd.Series, pd.Series]:
    """
    Previous value and the change from it; both null for the first row of a partition.
    """
    previous = lag_values(frame, value_column, 1, partition_column, order_column)
    return previous, frame[value_column] - previous


def period_over_period_growth(current: pd.Series, previous: pd.Series) -> pd.Series:
    """
    Growth rate (current - previous) / previous.

    Null when previous is null (first period) or exactly zero.
    """
    return (current - previous) / previous.where(previous != 0)


def forecast_next_period(current: pd.Series, growth: pd.Series) -> pd.Series:
    """
    Next-period projection current * (1 + growth).

    A null growth rate is treated as zero growth, so the forecast equals the
    current value rather than becoming null.
    """
    return current * (1 + growth.fillna(0.0))


# =============================================================================
# Roll-up Windows
# =============================================================================


def compute_daily_windows(
    daily: pd.DataFrame,
    short_window: int = DEFAULT_SHORT_WINDOW,
    long_window: int = DEFAULT_LONG_WINDOW,
    anomaly_window: int = DEFAULT_ANOMALY_WINDOW,
) -> pd.DataFrame:
    """
    Add cumulative totals, moving averages/volatility and the anomaly baseline
    to the daily roll-up.

    Added columns:
    - cumulative_sum / cumulative_count: running daily_sum and observation
      count from partition start through the current day
    - moving_avg_short / moving_std_short: trailing short_window rows of daily_sum
    - moving_avg_long / moving_std_long: trailing long_window rows of daily_sum
    - rolling_avg_anomaly / rolling_std_anomaly: trailing anomaly_window rows
    - prev_daily_sum / daily_delta: lag-1 comparison

    Returns:
        A new frame sorted by (category, bucket_start).
    """
    out = _ordered(daily, DEFAULT_PARTITION, DEFAULT_ORDER).reset_index(drop=True)
    grouped = out.groupby(DEFAULT_PARTITION, sort=False)

    out['cumulative_sum'] = grouped['daily_sum'].cumsum()
    out['cumulative_count'] = grouped['daily_count'].cumsum().astype('int64')

    windows = (
        ('short', short_window),
        ('long', long_window),
    )
    for label, size in windows:
        out[f'moving_avg_{label}'] = trailing_window_aggregate(out, 'daily_sum', size, WindowStatistic.MEAN)
        out[f'moving_std_{label}'] = trailing_window_aggregate(out, 'daily_sum', size, WindowStatistic.STD)

    out['rolling_avg_anomaly'] = trailing_window_aggregate(out, 'daily_sum', anomaly_window, WindowStatistic.MEAN)
    out['rolling_std_anomaly'] = trailing_window_aggregate(out, 'daily_sum', anomaly_window, WindowStatistic.STD)

    out['prev_daily_sum'], out['daily_delta'] = lag_delta(out, 'daily_sum')
    return out


def compute_weekly_windows(weekly: pd.DataFrame) -> pd.DataFrame:
    """
    Add week-over-week growth and a next-week forecast to the weekly roll-up.

    Added columns: prev_week_sum, weekly_growth_rate, weekly_forecast_next.
    """
    out = _ordered(weekly, DEFAULT_PARTITION, DEFAULT_ORDER).reset_index(drop=True)
    out['prev_week_sum'] = lag_values(out, 'weekly_sum')
    out['weekly_growth_rate'] = period_over_period_growth(out['weekly_sum'], out['prev_week_sum'])
    out['weekly_forecast_next'] = forecast_next_period(out['weekly_sum'], out['weekly_growth_rate'])
    return out


def compute_monthly_windows(monthly: pd.DataFrame) -> pd.DataFrame:
    """
    Add month-over-month comparisons to the monthly roll-up.

    Added columns:
    - prev_month_avg / month_delta: lag-1 of monthly_avg and the difference
    - prev_month_sum / growth_rate: lag-1 of monthly_sum and relative growth
    - forecast_next: monthly_sum * (1 + growth_rate), growth defaulting to 0
    """
    out = _ordered(monthly, DEFAULT_PARTITION, DEFAULT_ORDER).reset_index(drop=True)
    out['prev_month_avg'], out['month_delta'] = lag_delta(out, 'monthly_avg')
    out['prev_month_sum'] = lag_values(out, 'monthly_sum')
    out['growth_rate'] = period_over_period_growth(out['monthly_sum'], out['prev_month_sum'])
    out['forecast_next'] = forecast_next_period(out['monthly_sum'], out['growth_rate'])
    return out


def compute_seasonal_factors(monthly: pd.DataFrame) -> pd.DataFrame:
    """
    Mean of monthly averages per (category, calendar month) across all years.

    Returns:
        Columns: category, obs_month, seasonal_factor
    """
    return (
        monthly.groupby([DEFAULT_PARTITION, 'obs_month'], sort=True)['monthly_avg']
        .mean()
        .rename('seasonal_factor')
        .reset_index()
    )


# =============================================================================
# SQL Window Functions
# =============================================================================


def ntile(positions: pd.Series, sizes: pd.Series, buckets: int) -> pd.Series:
    """
    NTILE(buckets) for 1-based row positions within partitions of the given sizes.

    The first (size mod buckets) tiles get one extra row, as in PostgreSQL.
    """
    buckets = validate_window_size(buckets, 'buckets')
    pos = positions.to_numpy(dtype='int64') - 1
    size = sizes.to_numpy(dtype='int64')
    q, r = np.divmod(size, buckets)
    large = r * (q + 1)
    tile = np.where(
        pos < large,
        pos // (q + 1) + 1,
        r + (pos - large) // np.maximum(q, 1) + 1,
    )
    return pd.Series(tile, index=positions.index, dtype='int64')


def ranking_columns(
    frame: pd.DataFrame,
    order_by: Sequence[str],
    ascending: Union[bool, Sequence[bool]] = True,
    partition_by: Optional[Sequence[str]] = None,
    tiebreak: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    ROW_NUMBER, RANK, DENSE_RANK, PERCENT_RANK and CUME_DIST over a frame.

    Peers (rows sharing every partition and order_by value) get the same
    rank; tiebreak columns only fix row_number among peers.

    Args:
        frame: Rows to rank.
        order_by: Ordering columns.
        ascending: Direction per order_by column (or one flag for all).
        partition_by: Optional partition columns; None ranks the whole frame.
        tiebreak: Extra ascending columns ordering peers for row_number.

    Returns:
        DataFrame aligned to frame.index with columns row_number, rank,
        dense_rank, percent_rank, cume_dist, partition_size.
    """
    partition: List[str] = list(partition_by or [])
    order: List[str] = list(order_by)
    extra: List[str] = [c for c in (tiebreak or []) if c not in order]
    if isinstance(ascending, bool):
        directions = [ascending] * len(order)
    else:
        directions = list(ascending)

    columns = ['row_number', 'rank', 'dense_rank', 'percent_rank', 'cume_dist', 'partition_size']
    if frame.empty:
        return pd.DataFrame(index=frame.index, columns=columns)

    sort_cols = partition + order + extra
    sort_dirs = [True] * len(partition) + directions + [True] * len(extra)
    ordered = frame[sort_cols].sort_values(sort_cols, ascending=sort_dirs, kind='mergesort')

    if partition:
        part_groups = ordered.groupby(partition, sort=False)
        positions = part_groups.cumcount() + 1
        sizes = part_groups[sort_cols[0]].transform('size')
    else:
        positions = pd.Series(np.arange(1, len(ordered) + 1), index=ordered.index)
        sizes = pd.Series(len(ordered), index=ordered.index)

    peer_id = ordered.groupby(partition + order, sort=False, dropna=False).ngroup()
    rank = positions.groupby(peer_id).transform('min')
    last_peer = positions.groupby(peer_id).transform('max')

    if partition:
        first_peer_in_partition = peer_id.groupby([ordered[c] for c in partition]).transform('min')
        dense = peer_id - first_peer_in_partition + 1
    else:
        dense = peer_id + 1

    denominator = (sizes - 1).where(sizes > 1)
    percent_rank = ((rank - 1) / denominator).fillna(0.0)
    cume_dist = last_peer / sizes

    result = pd.DataFrame({
        'row_number': positions.astype('int64'),
        'rank': rank.astype('int64'),
        'dense_rank': dense.astype('int64'),
        'percent_rank': percent_rank.astype('float64'),
        'cume_dist': cume_dist.astype('float64'),
        'partition_size': sizes.astype('int64'),
    })
    return result.reindex(frame.index)
