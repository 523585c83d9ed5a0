"""
Time-bucketed roll-ups of the filtered observations.

Three independent group-by reductions per category:
- daily:   bucket = obs_date
- weekly:  bucket = ISO year + ISO week, bucket_start = Monday of that week
- monthly: bucket = year + month, bucket_start = first day of the month

Each yields <grain>_count, <grain>_sum and <grain>_avg of the metric plus a
bucket_start column. Rows come back sorted by (category, bucket_start) but
no stage here depends on that order; ordering semantics belong to the
windowing stage.
"""

from typing import List

import pandas as pd

from analytics_report.models.enums import BucketGrain

# Column prefix per bucket grain
BUCKET_PREFIXES = {
    BucketGrain.DAY: 'daily',
    BucketGrain.WEEK: 'weekly',
    BucketGrain.MONTH: 'monthly',
}


def _aggregate(
    df: pd.DataFrame,
    keys: List[str],
    prefix: str,
) -> pd.DataFrame:
    agg = (
        df.groupby(keys, sort=True)['metric']
        .agg(**{
            f'{prefix}_count': 'count',
            f'{prefix}_sum': 'sum',
            f'{prefix}_avg': 'mean',
        })
        .reset_index()
    )
    agg[f'{prefix}_count'] = agg[f'{prefix}_count'].astype('int64')
    return agg.sort_values(['category', 'bucket_start'], kind='mergesort').reset_index(drop=True)


def aggregate_daily(df: pd.DataFrame) -> pd.DataFrame:
    """
    Daily roll-up per (category, obs_date).

    Returns:
        Columns: category, obs_date, bucket_start, daily_count, daily_sum, daily_avg
    """
    frame = df[['category', 'obs_date', 'metric']].copy()
    frame['bucket_start'] = frame['obs_date']
    return _aggregate(frame, ['category', 'obs_date', 'bucket_start'], BUCKET_PREFIXES[BucketGrain.DAY])


def aggregate_weekly(df: pd.DataFrame) -> pd.DataFrame:
    """
    Weekly roll-up per (category, ISO year, ISO week).

    Returns:
        Columns: category, obs_iso_year, obs_week, bucket_start, weekly_count,
        weekly_sum, weekly_avg
    """
    frame = df[['category', 'obs_iso_year', 'obs_week', 'obs_date', 'obs_day_of_week', 'metric']].copy()
    frame['bucket_start'] = frame['obs_date'] - pd.to_timedelta(frame['obs_day_of_week'] - 1, unit='D')
    frame = frame.drop(columns=['obs_date', 'obs_day_of_week'])
    return _aggregate(frame, ['category', 'obs_iso_year', 'obs_week', 'bucket_start'], BUCKET_PREFIXES[BucketGrain.WEEK])


def aggregate_monthly(df: pd.DataFrame) -> pd.DataFrame:
    """
    Monthly roll-up per (category, year, month).

    Returns:
        Columns: category, obs_year, obs_month, bucket_start, monthly_count,
        monthly_sum, monthly_avg
    """
    frame = df[['category', 'obs_year', 'obs_month', 'obs_date', 'metric']].copy()
    frame['bucket_start'] = frame['obs_date'].dt.to_period('M').dt.to_timestamp()
    frame = frame.drop(columns=['obs_date'])
    return _aggregate(frame, ['category', 'obs_year', 'obs_month', 'bucket_start'], BUCKET_PREFIXES[BucketGrain.MONTH])
