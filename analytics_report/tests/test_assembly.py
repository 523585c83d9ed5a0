"""
Tests for report assembly: joined columns, derived ratios, bands, run-relative
fields, window functions and rounding.

The reference category is A = 10, 20, 30 on 2023-01-02..04 (Mon..Wed) with
the run timestamp 2023-03-01 06:00.
"""

import math

import numpy as np
import pandas as pd
import pytest

from analytics_report.core.errors import MissingCategoryStatisticsError, ReportConfigurationError
from analytics_report.services.assembly import (
    REPORT_COLUMNS,
    assemble_report,
    round_half_away,
)
from analytics_report.services.pipeline import ReportConfig, run_metric_report


@pytest.fixture
def reference_report(three_observations, run_timestamp) -> pd.DataFrame:
    return run_metric_report(three_observations, ReportConfig(run_timestamp=run_timestamp)).report


@pytest.fixture
def two_category_report(three_observations, single_observation, run_timestamp) -> pd.DataFrame:
    snapshot = pd.concat([three_observations, single_observation], ignore_index=True)
    return run_metric_report(snapshot, ReportConfig(run_timestamp=run_timestamp)).report


class TestRounding:

    def test_half_away_from_zero(self):
        values = pd.Series([0.125, -0.125, 2.5, 1.005, np.nan])
        rounded = round_half_away(values, 2)
        assert rounded.tolist()[:2] == [0.13, -0.13]
        assert rounded.iloc[2] == 2.5
        assert rounded.iloc[3] == 1.01
        assert math.isnan(rounded.iloc[4])

    def test_decimal_ties_round_up_consistently(self):
        # 1.005 and 0.285 sit just below the tie in binary floating point
        values = pd.Series([1.005, 2.675, 0.285, 1.115, -1.005])
        assert round_half_away(values, 2).tolist() == [1.01, 2.68, 0.29, 1.12, -1.01]

    def test_non_finite_values_pass_through(self):
        rounded = round_half_away(pd.Series([np.inf, -np.inf, 0.125]), 2)
        assert rounded.tolist() == [np.inf, -np.inf, 0.13]

    def test_preserves_index(self):
        rounded = round_half_away(pd.Series([0.125, np.nan], index=[7, 3]), 2)
        assert rounded.index.tolist() == [7, 3]

    def test_zero_places(self):
        assert round_half_away(pd.Series([0.5, 1.5, -2.5]), 0).tolist() == [1.0, 2.0, -3.0]


class TestLayout:

    def test_columns_and_order(self, reference_report):
        assert list(reference_report.columns) == REPORT_COLUMNS
        assert reference_report['id'].tolist() == [1, 2, 3]

    def test_one_row_per_observation(self, two_category_report):
        assert len(two_category_report) == 4
        assert two_category_report['category'].tolist() == ['A', 'A', 'A', 'B']


class TestCategoryColumns:

    def test_statistics(self, reference_report):
        row = reference_report.iloc[0]
        assert row['category_mean'] == 20.0
        assert row['category_stddev'] == 10.0
        assert (row['category_p25'], row['category_median'], row['category_p75']) == (15.0, 20.0, 25.0)
        assert row['category_iqr'] == 10.0

    def test_ratios(self, reference_report):
        assert reference_report['metric_to_mean_ratio'].tolist() == [0.5, 1.0, 1.5]
        assert reference_report['deviation_from_mean'].tolist() == [-10.0, 0.0, 10.0]
        assert reference_report['z_score'].tolist() == [-1.0, 0.0, 1.0]
        assert reference_report['range_position'].tolist() == [0.0, 0.5, 1.0]
        assert reference_report['quartile_position'].tolist() == [-0.5, 0.5, 1.5]
        assert reference_report['share_of_category_pct'].tolist() == [16.67, 33.33, 50.0]

    def test_bands(self, reference_report):
        assert reference_report['quartile_band'].tolist() == ['Bottom Quartile', 'Median', 'Top Quartile']
        assert reference_report['size_band'].tolist() == ['Small', 'Medium', 'Large']
        assert reference_report['deviation_band'].tolist() == ['Typical'] * 3

    def test_single_observation_guards(self, two_category_report):
        row = two_category_report.iloc[3]
        assert math.isnan(row['category_stddev'])
        assert math.isnan(row['z_score'])
        assert math.isnan(row['range_position'])
        assert math.isnan(row['quartile_position'])
        assert row['deviation_band'] == 'Insufficient Data'
        assert row['outlier_flag'] == 'Normal'
        assert row['quartile_band'] == 'Median'


class TestDailyColumns:

    def test_cumulative_and_moving(self, reference_report):
        assert reference_report['cumulative_sum'].tolist() == [10.0, 30.0, 60.0]
        assert reference_report['cumulative_count'].tolist() == [1, 2, 3]
        assert reference_report['moving_avg_7'].tolist() == [10.0, 15.0, 20.0]
        assert reference_report['moving_avg_30'].tolist() == [10.0, 15.0, 20.0]
        assert math.isnan(reference_report.loc[0, 'moving_std_7'])
        assert reference_report.loc[1, 'moving_std_7'] == 7.07
        assert reference_report.loc[2, 'moving_std_7'] == 10.0

    def test_daily_ratios(self, reference_report):
        assert reference_report['metric_to_ma7_ratio'].tolist() == [1.0, 1.33, 1.5]
        assert reference_report['volatility_7_pct'].tolist()[1:] == [47.14, 50.0]
        assert reference_report['daily_share_of_cumulative'].tolist() == [1.0, 0.6667, 0.5]
        assert reference_report['volume_band'].tolist() == ['Low Volume'] * 3

    def test_no_anomalies(self, reference_report):
        assert reference_report['anomaly_flag'].tolist() == ['Normal'] * 3
        assert reference_report['status'].tolist() == ['OK'] * 3


class TestPeriodColumns:

    def test_weekly(self, reference_report):
        assert reference_report['weekly_count'].tolist() == [3, 3, 3]
        assert reference_report['weekly_sum'].tolist() == [60.0] * 3
        assert reference_report['weekly_growth_rate'].isna().all()

    def test_monthly(self, reference_report):
        row = reference_report.iloc[0]
        assert row['monthly_sum'] == 60.0
        assert math.isnan(row['growth_rate'])
        assert math.isnan(row['growth_rate_pct'])
        assert row['forecast_next'] == 60.0
        assert row['trend_direction'] == 'stable'
        assert row['seasonal_factor'] == 20.0
        assert row['seasonal_index'] == 1.0
        assert row['monthly_share_of_category_pct'] == 100.0


class TestRunRelativeColumns:

    def test_run_fields(self, reference_report):
        row = reference_report.iloc[0]
        assert row['run_date'] == pd.Timestamp('2023-03-01')
        assert (row['run_year'], row['run_month'], row['run_week'], row['run_day']) == (2023, 3, 9, 1)

    def test_ages(self, reference_report):
        assert reference_report['days_since_created'].tolist() == [58, 57, 56]
        assert reference_report['days_since_updated'].iloc[0] == 58
        assert pd.isna(reference_report['days_since_updated'].iloc[1])
        assert reference_report['days_since_updated'].iloc[2] == 55
        assert reference_report['months_since_created'].tolist() == [2, 2, 2]
        assert reference_report['age_band'].tolist() == ['Aged'] * 3
        assert not reference_report['is_current_month'].any()
        assert reference_report['is_current_year'].all()

    def test_calendar_labels(self, reference_report):
        assert reference_report['obs_day_name'].tolist() == ['Monday', 'Tuesday', 'Wednesday']
        assert reference_report['obs_month_name'].tolist() == ['January'] * 3
        assert not reference_report['is_weekend'].any()

    def test_run_timestamp_is_required(self, three_observations):
        with pytest.raises(ReportConfigurationError):
            run_metric_report(three_observations, ReportConfig(run_timestamp=None))


class TestWindowFunctions:

    def test_in_category(self, reference_report):
        assert reference_report['category_row_number'].tolist() == [1, 2, 3]
        assert reference_report['category_rank'].tolist() == [3, 2, 1]
        assert reference_report['category_percent_rank'].tolist() == [1.0, 0.5, 0.0]

    def test_global(self, two_category_report):
        assert two_category_report['global_row_number'].tolist() == [1, 2, 3, 4]
        assert two_category_report['global_rank'].tolist() == [1, 2, 3, 4]
        assert two_category_report['global_dense_rank'].tolist() == [1, 2, 3, 4]
        assert two_category_report['global_decile'].tolist() == [1, 2, 3, 4]
        assert two_category_report['global_quartile'].tolist() == [1, 2, 3, 4]
        assert two_category_report['global_cume_dist'].tolist() == [0.25, 0.5, 0.75, 1.0]
        assert two_category_report['global_percent_rank'].tolist() == [0.0, 0.3333, 0.6667, 1.0]

    def test_ties_share_global_rank(self, three_observations, run_timestamp):
        tied = three_observations.copy()
        tied.loc[1, 'metric'] = 10.0
        report = run_metric_report(tied, ReportConfig(run_timestamp=run_timestamp)).report
        assert report['global_rank'].tolist() == [1, 1, 3]
        assert report['global_dense_rank'].tolist() == [1, 1, 2]
        assert report['global_row_number'].tolist() == [1, 2, 3]


class TestAssembleReport:

    def test_missing_statistics_abort(self, three_observations, run_timestamp):
        result = run_metric_report(three_observations, ReportConfig(run_timestamp=run_timestamp))
        stats = result.category_stats.drop(index='A')
        with pytest.raises(MissingCategoryStatisticsError):
            assemble_report(
                result.observations, stats, result.daily, result.weekly,
                result.monthly, result.seasonal, run_timestamp,
            )

    def test_empty_observations_give_empty_layout(self, three_observations, run_timestamp):
        result = run_metric_report(three_observations, ReportConfig(run_timestamp=run_timestamp))
        report = assemble_report(
            result.observations.iloc[0:0], result.category_stats, result.daily,
            result.weekly, result.monthly, result.seasonal, run_timestamp,
        )
        assert report.empty
        assert list(report.columns) == REPORT_COLUMNS
