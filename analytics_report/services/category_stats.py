"""
Per-category statistics for the metric report.

Statistics are computed once over the filtered snapshot and every later
stage joins against the resulting frame; nothing downstream recomputes them
per observation.

Semantics:
- category_stddev is the sample standard deviation (Bessel-corrected, N-1).
  It is null for categories with a single observation and every derived
  field that depends on it must treat it as null, never as zero.
- Percentiles use linear interpolation between order statistics
  (PERCENTILE_CONT), so p25 <= median <= p75 always holds.
"""

from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from analytics_report.core.errors import MissingCategoryStatisticsError


# =============================================================================
# Constants
# =============================================================================

CATEGORY_STAT_COLUMNS = [
    'category_count',
    'category_sum',
    'category_mean',
    'category_min',
    'category_max',
    'category_stddev',
    'category_p25',
    'category_median',
    'category_p75',
]


# =============================================================================
# Percentiles
# =============================================================================


def percentile_cont(values: Sequence[float], q: float) -> Optional[float]:
    """
    Continuous percentile with linear interpolation between order statistics.

    Matches PostgreSQL PERCENTILE_CONT(q) WITHIN GROUP (ORDER BY value).
    Null values are ignored.

    Args:
        values: Sample values.
        q: Fraction in [0, 1].

    Returns:
        The interpolated percentile, or None when there are no values.

    Example:
        >>> percentile_cont([10.0, 20.0, 30.0], 0.25)
        15.0
    """
    if not 0.0 <= q <= 1.0:
        raise ValueError(f"percentile fraction must be within [0, 1], got {q}")
    arr = np.asarray([v for v in values if v is not None], dtype=np.float64)
    arr = arr[~np.isnan(arr)]
    if arr.size == 0:
        return None
    return float(np.quantile(arr, q, method='linear'))


# =============================================================================
# Category Statistics
# =============================================================================


def compute_category_statistics(df: pd.DataFrame) -> pd.DataFrame:
    """
    Compute count, sum, mean, min, max, sample stddev and quartiles per category.

    Args:
        df: Filtered observations with 'category' and 'metric' columns.

    Returns:
        DataFrame indexed by category with CATEGORY_STAT_COLUMNS. Empty when
        the snapshot is empty.
    """
    if df.empty:
        empty = pd.DataFrame(columns=CATEGORY_STAT_COLUMNS, dtype='float64')
        empty.index.name = 'category'
        return empty

    grouped = df.groupby('category', sort=True)['metric']

    stats = pd.DataFrame({
        'category_count': grouped.count().astype('int64'),
        'category_sum': grouped.sum(),
        'category_mean': grouped.mean(),
        'category_min': grouped.min(),
        'category_max': grouped.max(),
        # ddof=1 yields NaN for single-observation categories
        'category_stddev': grouped.std(ddof=1),
        'category_p25': grouped.quantile(0.25, interpolation='linear'),
        'category_median': grouped.quantile(0.50, interpolation='linear'),
        'category_p75': grouped.quantile(0.75, interpolation='linear'),
    })
    stats.index.name = 'category'
    return stats


def require_category_statistics(stats: pd.DataFrame, categories: Iterable[str]) -> None:
    """
    Assert that every category has a statistics row.

    Raises:
        MissingCategoryStatisticsError: If any category is absent from stats.
    """
    missing = set(categories) - set(stats.index)
    if missing:
        raise MissingCategoryStatisticsError(missing)
