"""
Tests for the customer risk report and monthly cohorts.
"""

import math
from datetime import datetime
from unittest.mock import AsyncMock, patch

import pandas as pd
import pytest

from analytics_report.services.risk_report import (
    aggregate_monthly_cohorts,
    build_contact_verification,
    build_customer_risk_report,
    build_tax_profile_summary,
    fetch_risk_inputs,
    latest_risk_scores,
    risk_bands,
)


@pytest.fixture
def customers() -> pd.DataFrame:
    return pd.DataFrame({
        'customer_id': [1, 2, 3, 4],
        'customer_name': ['Acme', 'Birch', 'Cobalt', 'Dune'],
        'segment': ['SME', 'SME', 'Corporate', 'Retail'],
        'created_at': pd.to_datetime(['2023-01-05', '2023-01-20', '2023-02-03', '2023-03-15']),
    })


@pytest.fixture
def tax_profiles() -> pd.DataFrame:
    return pd.DataFrame({
        'customer_id': [1, 2, 3],
        'tax_id': ['T1', 'T2', 'T3'],
        'tax_status': ['active', 'active', 'suspended'],
        'tax_debt_amount': [0.0, 1500.0, None],
    })


@pytest.fixture
def contacts() -> pd.DataFrame:
    return pd.DataFrame({
        'customer_id': [1, 1, 2, 2, 3],
        'contact_type': ['email', 'phone', 'email', 'phone', 'email'],
        'contact_value': ['a@x', '+1', 'b@x', '+2', 'c@x'],
        'verified_at': pd.to_datetime(['2023-01-06', '2023-01-07', '2023-01-21', None, None]),
    })


@pytest.fixture
def risk_scores() -> pd.DataFrame:
    return pd.DataFrame({
        'customer_id': [1, 1, 2, 3, 3],
        'score_date': pd.to_datetime(['2023-02-01', '2023-03-01', '2023-03-01', '2023-02-15', '2023-03-15']),
        'financial_risk_score': [30.0, 25.0, 55.0, 60.0, 82.0],
    })


@pytest.fixture
def edr_status() -> pd.DataFrame:
    return pd.DataFrame({
        'customer_id': [1, 4],
        'edr_status': ['registered', 'bankruptcy'],
        'bankruptcy_flag': [False, True],
    })


@pytest.fixture
def risk_report(customers, tax_profiles, contacts, risk_scores, edr_status) -> pd.DataFrame:
    return build_customer_risk_report(customers, tax_profiles, contacts, risk_scores, edr_status)


class TestCustomerSummaries:

    def test_tax_profile_summary(self, tax_profiles):
        summary = build_tax_profile_summary(tax_profiles)
        assert summary['has_tax_debt'].tolist() == [False, True, False]
        assert summary['tax_debt_amount'].tolist() == [0.0, 1500.0, 0.0]

    def test_contact_verification(self, contacts):
        verification = build_contact_verification(contacts).set_index('customer_id')
        assert verification['verified_contacts'].to_dict() == {1: 2, 2: 1, 3: 0}
        assert verification['total_contacts'].to_dict() == {1: 2, 2: 2, 3: 1}
        assert verification['contact_verification_rate'].to_dict() == {1: 1.0, 2: 0.5, 3: 0.0}
        assert verification['contact_status'].to_dict() == {
            1: 'Verified', 2: 'Partially Verified', 3: 'Unverified',
        }

    def test_latest_risk_scores(self, risk_scores):
        latest = latest_risk_scores(risk_scores).set_index('customer_id')
        assert latest['financial_risk_score'].to_dict() == {1: 25.0, 2: 55.0, 3: 82.0}
        assert latest.loc[1, 'risk_score_delta'] == -5.0
        assert math.isnan(latest.loc[2, 'risk_score_delta'])
        assert latest.loc[3, 'risk_score_delta'] == 22.0

    def test_risk_bands(self):
        score = pd.Series([80.0, 50.0, 10.0, float('nan'), float('nan')])
        bankrupt = pd.Series([False, False, False, False, True])
        assert risk_bands(score, bankrupt).tolist() == ['High', 'Medium', 'Low', 'Unknown', 'High']


class TestCustomerRiskReport:

    def test_one_row_per_customer(self, risk_report):
        assert risk_report['customer_id'].tolist() == [1, 2, 3, 4]

    def test_missing_inputs_default(self, risk_report):
        dune = risk_report.set_index('customer_id').loc[4]
        assert dune['total_contacts'] == 0
        assert dune['contact_status'] == 'Unverified'
        assert not dune['has_tax_debt']
        assert dune['bankruptcy_flag']
        assert dune['risk_band'] == 'High'

    def test_risk_band_and_flags(self, risk_report):
        by_id = risk_report.set_index('customer_id')
        assert by_id['risk_band'].to_dict() == {1: 'Low', 2: 'Medium', 3: 'High', 4: 'High'}
        # 2: tax debt; 3: no verified contact + high score; 4: bankrupt + no verified contact
        assert by_id['risk_flags'].to_dict() == {1: 0, 2: 1, 3: 2, 4: 2}

    def test_cohort_month(self, risk_report):
        assert risk_report['cohort_month'].dt.day.eq(1).all()


class TestMonthlyCohorts:

    def test_cohort_aggregation(self, risk_report):
        cohorts = aggregate_monthly_cohorts(risk_report)
        assert cohorts['cohort_month'].tolist() == [
            pd.Timestamp('2023-01-01'), pd.Timestamp('2023-02-01'), pd.Timestamp('2023-03-01'),
        ]
        assert cohorts['customers'].tolist() == [2, 1, 1]
        assert cohorts['cumulative_customers'].tolist() == [2, 3, 4]
        assert cohorts.loc[0, 'avg_risk_score'] == 40.0
        assert cohorts.loc[0, 'median_risk_score'] == 40.0
        assert cohorts.loc[0, 'verified_share'] == 0.5
        assert cohorts.loc[2, 'bankrupt_share'] == 1.0

    def test_cohort_growth(self, risk_report):
        cohorts = aggregate_monthly_cohorts(risk_report)
        assert math.isnan(cohorts.loc[0, 'cohort_growth_rate'])
        assert cohorts.loc[1, 'cohort_growth_rate'] == -0.5
        assert cohorts.loc[2, 'cohort_growth_rate'] == 0.0

    def test_cohort_without_scores(self, risk_report):
        cohorts = aggregate_monthly_cohorts(risk_report)
        # Dune (March) has no score
        assert math.isnan(cohorts.loc[2, 'avg_risk_score'])
        assert math.isnan(cohorts.loc[2, 'median_risk_score'])

    def test_empty_report(self):
        assert aggregate_monthly_cohorts(pd.DataFrame()).empty


class TestFetchRiskInputs:

    @pytest.mark.asyncio
    async def test_fetches_every_extract(self, mock_db_pool):
        conn = mock_db_pool.acquire.return_value.__aenter__.return_value
        with patch('analytics_report.services.risk_report.get_db_pool', new=AsyncMock(return_value=mock_db_pool)):
            frames = await fetch_risk_inputs(datetime(2023, 1, 1), schema='warehouse')

        assert set(frames) == {'customers', 'tax_profiles', 'contacts', 'risk_scores', 'edr_status'}
        assert conn.fetch.call_count == 5
        for call in conn.fetch.call_args_list:
            query, boundary = call.args
            assert 'warehouse.' in query
            assert boundary == datetime(2023, 1, 1)
        assert list(frames['customers'].columns) == ['customer_id', 'customer_name', 'segment', 'created_at']
