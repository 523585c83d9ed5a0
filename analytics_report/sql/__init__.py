"""
SQL Query Module for the metric report backend.

Provides parameterized SQL queries for:
- Observation snapshot reads, report sink upserts and export job state (report_queries)
- Banking warehouse extracts for the customer risk report (risk_queries)

Example usage:
    from analytics_report.sql import get_observation_snapshot_query

    rows = await conn.fetch(get_observation_snapshot_query('metric_observation'), cutoff)
"""

# =============================================================================
# REPORT QUERIES - snapshot, sink and job state
# =============================================================================

from analytics_report.sql.report_queries import (
    get_observation_snapshot_query,
    get_report_upsert_query,
    get_export_state_exists_query,
    get_export_state_upsert_query,
    REPORT_SINK_COLUMNS,
)

# =============================================================================
# RISK QUERIES - banking warehouse extracts
# =============================================================================

from analytics_report.sql.risk_queries import (
    get_customers_query,
    get_tax_profiles_query,
    get_contacts_query,
    get_risk_scores_query,
    get_edr_status_query,
    DEFAULT_WAREHOUSE_SCHEMA,
)

__all__ = [
    'get_observation_snapshot_query',
    'get_report_upsert_query',
    'get_export_state_exists_query',
    'get_export_state_upsert_query',
    'REPORT_SINK_COLUMNS',
    'get_customers_query',
    'get_tax_profiles_query',
    'get_contacts_query',
    'get_risk_scores_query',
    'get_edr_status_query',
    'DEFAULT_WAREHOUSE_SCHEMA',
]
