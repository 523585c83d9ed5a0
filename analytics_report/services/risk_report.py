"""
Customer Risk Report Service

Joins the warehouse extracts from sql.risk_queries into one row per customer
and rolls customers up into monthly onboarding cohorts.

Inputs (one DataFrame each, columns as returned by the queries):
- customers:     customer_id, customer_name, segment, created_at
- tax_profiles:  customer_id, tax_id, tax_status, tax_debt_amount
- contacts:      customer_id, contact_type, contact_value, verified_at
- risk_scores:   customer_id, score_date, financial_risk_score
- edr_status:    customer_id, edr_status, bankruptcy_flag

The EDR bankruptcy flag is taken as given; nothing here interprets registry
statuses. Customers without a score land in the 'Unknown' risk band unless
they are bankrupt.
"""

import logging
from typing import Any, Dict, Optional

import pandas as pd

from analytics_report.core.database import get_db_pool
from analytics_report.models.enums import ContactStatus, RiskBand
from analytics_report.services.assembly import round_half_away
from analytics_report.services.category_stats import percentile_cont
from analytics_report.services.ingestion import normalize_cutoff
from analytics_report.services.windowing import lag_values, period_over_period_growth
from analytics_report.sql.risk_queries import (
    DEFAULT_WAREHOUSE_SCHEMA,
    get_contacts_query,
    get_customers_query,
    get_edr_status_query,
    get_risk_scores_query,
    get_tax_profiles_query,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

# financial_risk_score thresholds (score scale 0-100)
HIGH_RISK_MIN_SCORE: float = 70.0
MEDIUM_RISK_MIN_SCORE: float = 40.0

RISK_INPUT_COLUMNS: Dict[str, list] = {
    'customers': ['customer_id', 'customer_name', 'segment', 'created_at'],
    'tax_profiles': ['customer_id', 'tax_id', 'tax_status', 'tax_debt_amount'],
    'contacts': ['customer_id', 'contact_type', 'contact_value', 'verified_at'],
    'risk_scores': ['customer_id', 'score_date', 'financial_risk_score'],
    'edr_status': ['customer_id', 'edr_status', 'bankruptcy_flag'],
}


# =============================================================================
# PER-CUSTOMER SUMMARIES
# =============================================================================

def build_tax_profile_summary(tax_profiles: pd.DataFrame) -> pd.DataFrame:
    """
    One tax row per customer with a has_tax_debt flag.

    Returns:
        Columns: customer_id, tax_id, tax_status, tax_debt_amount, has_tax_debt
    """
    out = tax_profiles[RISK_INPUT_COLUMNS['tax_profiles']].drop_duplicates('customer_id', keep='last').copy()
    out['tax_debt_amount'] = pd.to_numeric(out['tax_debt_amount']).fillna(0.0).astype(float)
    out['has_tax_debt'] = out['tax_debt_amount'] > 0
    return out.reset_index(drop=True)


def build_contact_verification(contacts: pd.DataFrame) -> pd.DataFrame:
    """
    Count verified contacts per customer.

    A contact is verified when verified_at is set. The verification rate is
    null for customers without contacts, who are reported as 'Unverified'.

    Returns:
        Columns: customer_id, verified_contacts, total_contacts,
        contact_verification_rate, contact_status
    """
    frame = contacts[['customer_id', 'verified_at']].copy()
    frame['is_verified'] = frame['verified_at'].notna()
    out = (
        frame.groupby('customer_id', sort=True)
        .agg(verified_contacts=('is_verified', 'sum'), total_contacts=('is_verified', 'size'))
        .reset_index()
    )
    out['verified_contacts'] = out['verified_contacts'].astype('int64')
    out['total_contacts'] = out['total_contacts'].astype('int64')
    out['contact_verification_rate'] = (
        out['verified_contacts'] / out['total_contacts'].where(out['total_contacts'] != 0)
    )
    out['contact_status'] = _contact_status(out['contact_verification_rate'])
    return out


def _contact_status(rate: pd.Series) -> pd.Series:
    status = pd.Series(ContactStatus.UNVERIFIED.value, index=rate.index, dtype=object)
    status[rate > 0] = ContactStatus.PARTIAL.value
    status[rate >= 1] = ContactStatus.VERIFIED.value
    return status


def latest_risk_scores(risk_scores: pd.DataFrame) -> pd.DataFrame:
    """
    Latest financial risk score per customer and its change since the previous score.

    Returns:
        Columns: customer_id, score_date, financial_risk_score,
        previous_risk_score, risk_score_delta
    """
    frame = risk_scores[RISK_INPUT_COLUMNS['risk_scores']].copy()
    frame['score_date'] = pd.to_datetime(frame['score_date'])
    frame['financial_risk_score'] = pd.to_numeric(frame['financial_risk_score']).astype(float)
    frame = frame.sort_values(['customer_id', 'score_date'], kind='mergesort').reset_index(drop=True)
    frame['previous_risk_score'] = lag_values(
        frame, 'financial_risk_score', partition_column='customer_id', order_column='score_date'
    )
    frame['risk_score_delta'] = frame['financial_risk_score'] - frame['previous_risk_score']
    return frame.drop_duplicates('customer_id', keep='last').reset_index(drop=True)


def risk_bands(score: pd.Series, bankruptcy_flag: pd.Series) -> pd.Series:
    """High for bankrupt customers or scores >= 70, Medium >= 40, Low below, Unknown without a score."""
    band = pd.Series(RiskBand.LOW.value, index=score.index, dtype=object)
    band[score >= MEDIUM_RISK_MIN_SCORE] = RiskBand.MEDIUM.value
    band[score >= HIGH_RISK_MIN_SCORE] = RiskBand.HIGH.value
    band[score.isna()] = RiskBand.UNKNOWN.value
    band[bankruptcy_flag.astype(bool)] = RiskBand.HIGH.value
    return band


# =============================================================================
# CUSTOMER REPORT
# =============================================================================

def build_customer_risk_report(
    customers: pd.DataFrame,
    tax_profiles: pd.DataFrame,
    contacts: pd.DataFrame,
    risk_scores: pd.DataFrame,
    edr_status: pd.DataFrame,
) -> pd.DataFrame:
    """
    One row per customer combining tax, contact, score and EDR signals.

    risk_flags counts the warning signals present: tax debt, bankruptcy,
    no verified contact, and a score in the High band.

    Returns:
        DataFrame ordered by customer_id.
    """
    report = customers[RISK_INPUT_COLUMNS['customers']].copy()
    report['created_at'] = pd.to_datetime(report['created_at'])

    report = report.merge(build_tax_profile_summary(tax_profiles), on='customer_id', how='left')
    report = report.merge(build_contact_verification(contacts), on='customer_id', how='left')
    report = report.merge(latest_risk_scores(risk_scores), on='customer_id', how='left')
    edr = edr_status[RISK_INPUT_COLUMNS['edr_status']].drop_duplicates('customer_id', keep='last')
    report = report.merge(edr, on='customer_id', how='left')

    report['tax_debt_amount'] = report['tax_debt_amount'].fillna(0.0)
    report['has_tax_debt'] = report['has_tax_debt'].fillna(False).astype(bool)
    report['verified_contacts'] = report['verified_contacts'].fillna(0).astype('int64')
    report['total_contacts'] = report['total_contacts'].fillna(0).astype('int64')
    report['contact_status'] = report['contact_status'].fillna(ContactStatus.UNVERIFIED.value)
    report['bankruptcy_flag'] = report['bankruptcy_flag'].fillna(False).astype(bool)

    report['risk_band'] = risk_bands(report['financial_risk_score'], report['bankruptcy_flag'])
    report['risk_flags'] = (
        report['has_tax_debt'].astype(int)
        + report['bankruptcy_flag'].astype(int)
        + (report['verified_contacts'] == 0).astype(int)
        + (report['financial_risk_score'] >= HIGH_RISK_MIN_SCORE).astype(int)
    )
    report['cohort_month'] = report['created_at'].dt.to_period('M').dt.to_timestamp()

    report = report.sort_values('customer_id', kind='mergesort').reset_index(drop=True)
    logger.info(
        f"Built risk report for {len(report)} customers, "
        f"{int((report['risk_band'] == RiskBand.HIGH.value).sum())} high risk"
    )
    return report


# =============================================================================
# COHORTS
# =============================================================================

def aggregate_monthly_cohorts(report: pd.DataFrame) -> pd.DataFrame:
    """
    Roll the customer risk report up by onboarding month.

    Returns:
        Columns: cohort_month, customers, avg_risk_score, median_risk_score,
        bankrupt_share, verified_share, cumulative_customers, cohort_growth_rate
    """
    columns = [
        'cohort_month', 'customers', 'avg_risk_score', 'median_risk_score',
        'bankrupt_share', 'verified_share', 'cumulative_customers', 'cohort_growth_rate',
    ]
    if report.empty:
        return pd.DataFrame(columns=columns)

    rows = []
    for cohort_month, group in report.groupby('cohort_month', sort=True):
        scores = group['financial_risk_score'].dropna()
        rows.append({
            'cohort_month': cohort_month,
            'customers': len(group),
            'avg_risk_score': scores.mean() if len(scores) else None,
            'median_risk_score': percentile_cont(scores.tolist(), 0.5),
            'bankrupt_share': group['bankruptcy_flag'].mean(),
            'verified_share': (group['contact_status'] == ContactStatus.VERIFIED.value).mean(),
        })

    cohorts = pd.DataFrame(rows)
    cohorts['avg_risk_score'] = cohorts['avg_risk_score'].astype(float)
    cohorts['median_risk_score'] = cohorts['median_risk_score'].astype(float)
    cohorts['cumulative_customers'] = cohorts['customers'].cumsum()
    cohorts['cohort_growth_rate'] = period_over_period_growth(
        cohorts['customers'].astype(float), cohorts['customers'].shift(1).astype(float)
    )

    for column in ('avg_risk_score', 'median_risk_score'):
        cohorts[column] = round_half_away(cohorts[column], 2)
    for column in ('bankrupt_share', 'verified_share', 'cohort_growth_rate'):
        cohorts[column] = round_half_away(cohorts[column], 4)
    return cohorts[columns]


# =============================================================================
# WAREHOUSE LOADING
# =============================================================================

async def fetch_risk_inputs(
    cutoff: Any,
    schema: str = DEFAULT_WAREHOUSE_SCHEMA,
) -> Dict[str, pd.DataFrame]:
    """
    Load every risk report extract for customers onboarded at or after cutoff.

    Returns:
        Dict keyed like RISK_INPUT_COLUMNS, one DataFrame per extract.
    """
    boundary = normalize_cutoff(cutoff).to_pydatetime()
    queries = {
        'customers': get_customers_query(schema),
        'tax_profiles': get_tax_profiles_query(schema),
        'contacts': get_contacts_query(schema),
        'risk_scores': get_risk_scores_query(schema),
        'edr_status': get_edr_status_query(schema),
    }

    pool = await get_db_pool()
    frames: Dict[str, pd.DataFrame] = {}
    async with pool.acquire() as conn:
        for name, query in queries.items():
            rows = await conn.fetch(query, boundary)
            frames[name] = pd.DataFrame([dict(r) for r in rows], columns=RISK_INPUT_COLUMNS[name])
            logger.info(f"Fetched {len(rows)} rows for {name}")
    return frames


async def run_customer_risk_report(
    cutoff: Any,
    schema: Optional[str] = None,
) -> Dict[str, pd.DataFrame]:
    """
    Fetch the extracts and build both the customer report and the cohort roll-up.
    """
    inputs = await fetch_risk_inputs(cutoff, schema or DEFAULT_WAREHOUSE_SCHEMA)
    report = build_customer_risk_report(**inputs)
    return {'customers': report, 'cohorts': aggregate_monthly_cohorts(report)}
