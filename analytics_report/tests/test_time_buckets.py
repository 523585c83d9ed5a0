"""
Tests for daily, weekly and monthly roll-ups.
"""

import pandas as pd

from analytics_report.services.category_stats import compute_category_statistics
from analytics_report.services.ingestion import prepare_observations
from analytics_report.services.time_buckets import (
    aggregate_daily,
    aggregate_monthly,
    aggregate_weekly,
)


class TestDailyRollup:

    def test_reference_category(self, three_observations):
        daily = aggregate_daily(prepare_observations(three_observations, '2023-01-01'))
        assert daily['daily_count'].tolist() == [1, 1, 1]
        assert daily['daily_sum'].tolist() == [10.0, 20.0, 30.0]
        assert daily['bucket_start'].tolist() == [
            pd.Timestamp('2023-01-02'), pd.Timestamp('2023-01-03'), pd.Timestamp('2023-01-04'),
        ]

    def test_multiple_observations_per_day(self, mixed_snapshot):
        filtered = prepare_observations(mixed_snapshot, '2023-01-01')
        daily = aggregate_daily(filtered)
        alpha = daily[daily['category'] == 'alpha']
        # Day offset 2 carries three observations
        jan_3 = alpha[alpha['obs_date'] == pd.Timestamp('2023-01-03')].iloc[0]
        assert jan_3['daily_count'] == 3
        assert jan_3['daily_avg'] == jan_3['daily_sum'] / 3


class TestWeeklyRollup:

    def test_bucket_start_is_monday(self, mixed_snapshot):
        weekly = aggregate_weekly(prepare_observations(mixed_snapshot, '2023-01-01'))
        assert (weekly['bucket_start'].dt.dayofweek == 0).all()

    def test_sunday_belongs_to_previous_iso_week(self, mixed_snapshot):
        weekly = aggregate_weekly(prepare_observations(mixed_snapshot, '2023-01-01'))
        first = weekly[weekly['category'] == 'alpha'].iloc[0]
        assert (first['obs_iso_year'], first['obs_week']) == (2022, 52)
        assert first['bucket_start'] == pd.Timestamp('2022-12-26')


class TestMonthlyRollup:

    def test_bucket_start_is_first_of_month(self, mixed_snapshot):
        monthly = aggregate_monthly(prepare_observations(mixed_snapshot, '2023-01-01'))
        assert (monthly['bucket_start'].dt.day == 1).all()
        assert monthly[monthly['category'] == 'alpha']['obs_month'].tolist() == [1, 2, 3]


class TestCountInvariants:
    """count(c) == sum of daily counts == sum of monthly counts."""

    def test_counts_agree_across_grains(self, mixed_snapshot):
        filtered = prepare_observations(mixed_snapshot, '2023-01-01')
        stats = compute_category_statistics(filtered)
        daily = aggregate_daily(filtered).groupby('category')['daily_count'].sum()
        weekly = aggregate_weekly(filtered).groupby('category')['weekly_count'].sum()
        monthly = aggregate_monthly(filtered).groupby('category')['monthly_count'].sum()

        for category, count in stats['category_count'].items():
            assert daily[category] == count
            assert weekly[category] == count
            assert monthly[category] == count

    def test_sums_agree_across_grains(self, mixed_snapshot):
        filtered = prepare_observations(mixed_snapshot, '2023-01-01')
        daily = aggregate_daily(filtered).groupby('category')['daily_sum'].sum()
        monthly = aggregate_monthly(filtered).groupby('category')['monthly_sum'].sum()
        pd.testing.assert_series_equal(daily, monthly, check_names=False)
