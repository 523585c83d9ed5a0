"""
Risk Queries Module for the customer risk report.

Parameterized PostgreSQL extracts from the banking warehouse. Each query
returns the raw rows that services.risk_report joins and aggregates; no
business rules are applied in SQL so the same logic runs on CSV extracts in
tests.

All queries take the customer onboarding boundary as $1 so every extract
covers the same customer population.
"""


# =============================================================================
# CONSTANTS
# =============================================================================

# Default warehouse schema holding the customer tables
DEFAULT_WAREHOUSE_SCHEMA: str = 'dwh'


# =============================================================================
# CUSTOMER EXTRACTS
# =============================================================================

def get_customers_query(schema: str = DEFAULT_WAREHOUSE_SCHEMA) -> str:
    """
    Generate SQL for customers onboarded at or after $1.

    Returns:
        Query yielding customer_id, customer_name, segment, created_at.
    """
    return f"""
    -- Customers in scope for the risk report
    SELECT
        c.customer_id,
        c.customer_name,
        c.segment,
        c.created_at
    FROM {schema}.customer c
    WHERE c.created_at >= $1
    ORDER BY c.customer_id
    """


def get_tax_profiles_query(schema: str = DEFAULT_WAREHOUSE_SCHEMA) -> str:
    """
    Generate SQL for the current tax profile of in-scope customers.

    Returns:
        Query yielding customer_id, tax_id, tax_status, tax_debt_amount.
    """
    return f"""
    -- Current tax profile per customer
    SELECT
        t.customer_id,
        t.tax_id,
        t.tax_status,
        COALESCE(t.tax_debt_amount, 0) AS tax_debt_amount
    FROM {schema}.customer_tax_profile t
    JOIN {schema}.customer c ON c.customer_id = t.customer_id
    WHERE c.created_at >= $1
      AND t.is_current
    """


def get_contacts_query(schema: str = DEFAULT_WAREHOUSE_SCHEMA) -> str:
    """
    Generate SQL for contact channels and their verification timestamps.

    Returns:
        Query yielding customer_id, contact_type, contact_value, verified_at.
        verified_at is NULL for unverified contacts.
    """
    return f"""
    -- Contact channels with verification state
    SELECT
        ct.customer_id,
        ct.contact_type,
        ct.contact_value,
        ct.verified_at
    FROM {schema}.customer_contact ct
    JOIN {schema}.customer c ON c.customer_id = ct.customer_id
    WHERE c.created_at >= $1
    """


def get_risk_scores_query(schema: str = DEFAULT_WAREHOUSE_SCHEMA) -> str:
    """
    Generate SQL for the financial risk score history.

    The full history is returned; the report takes the latest score and the
    change from the one before it.

    Returns:
        Query yielding customer_id, score_date, financial_risk_score.
    """
    return f"""
    -- Financial risk score history
    SELECT
        r.customer_id,
        r.score_date,
        r.financial_risk_score
    FROM {schema}.customer_risk_score r
    JOIN {schema}.customer c ON c.customer_id = r.customer_id
    WHERE c.created_at >= $1
    ORDER BY r.customer_id, r.score_date
    """


def get_edr_status_query(schema: str = DEFAULT_WAREHOUSE_SCHEMA) -> str:
    """
    Generate SQL for the legal registry (EDR) and bankruptcy status.

    Returns:
        Query yielding customer_id, edr_status, bankruptcy_flag.
    """
    return f"""
    -- Registry and bankruptcy status
    SELECT
        e.customer_id,
        e.edr_status,
        COALESCE(e.bankruptcy_flag, FALSE) AS bankruptcy_flag
    FROM {schema}.customer_edr_status e
    JOIN {schema}.customer c ON c.customer_id = e.customer_id
    WHERE c.created_at >= $1
    """
