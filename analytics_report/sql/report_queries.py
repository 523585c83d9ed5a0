"""
Report Queries Module for the metric report backend.

Provides parameterized PostgreSQL queries for:
- Reading the observation snapshot at or after a cutoff
- Bulk upserting assembled report rows
- Tracking export job state for idempotency

Table names come from Settings and are interpolated; every value is passed
as a $n parameter.
"""

from typing import List


# =============================================================================
# CONSTANTS
# =============================================================================

# Columns persisted to the report sink, in upsert parameter order.
# The full display set is written to CSV; the table keeps the fields
# downstream consumers query on.
REPORT_SINK_COLUMNS: List[str] = [
    'id',
    'category',
    'metric',
    'created_at',
    'obs_date',
    'category_mean',
    'category_stddev',
    'category_median',
    'z_score',
    'daily_sum',
    'cumulative_sum',
    'moving_avg_7',
    'moving_avg_30',
    'rolling_avg_14',
    'rolling_std_14',
    'growth_rate',
    'forecast_next',
    'seasonal_factor',
    'performance',
    'outlier_flag',
    'anomaly_flag',
    'trend_direction',
    'quartile_band',
    'status',
    'global_rank',
    'global_percent_rank',
]


# =============================================================================
# SNAPSHOT QUERY
# =============================================================================

def get_observation_snapshot_query(table_name: str) -> str:
    """
    Generate SQL to read every observation created at or after a cutoff.

    Args:
        table_name: Observation table name.

    Returns:
        PostgreSQL query string taking the cutoff as $1.

    Note:
        Ordering is applied by the report itself; the ORDER BY here only
        keeps exports stable for people reading raw snapshots.
    """
    return f"""
    -- Observation snapshot for the metric report
    SELECT
        id,
        created_at,
        updated_at,
        metric,
        category
    FROM {table_name}
    WHERE created_at >= $1
    ORDER BY category, created_at, id
    """


# =============================================================================
# REPORT SINK
# =============================================================================

def get_report_upsert_query(table_name: str) -> str:
    """
    Generate SQL to upsert one report row keyed by (run_date, id).

    Parameter order is $1 = run_date followed by REPORT_SINK_COLUMNS.

    Args:
        table_name: Report sink table name.

    Returns:
        PostgreSQL upsert statement.
    """
    columns = ['run_date'] + REPORT_SINK_COLUMNS
    placeholders = ', '.join(f'${i}' for i in range(1, len(columns) + 1))
    updates = ',\n        '.join(
        f'{col} = EXCLUDED.{col}' for col in REPORT_SINK_COLUMNS if col != 'id'
    )
    return f"""
    INSERT INTO {table_name} (
        {', '.join(columns)},
        written_at
    ) VALUES (
        {placeholders},
        NOW()
    )
    ON CONFLICT (run_date, id)
    DO UPDATE SET
        {updates},
        written_at = NOW()
    """


# =============================================================================
# EXPORT JOB STATE
# =============================================================================

def get_export_state_exists_query() -> str:
    """
    Generate SQL checking whether a report was already exported for a run date ($1).
    """
    return """
    SELECT EXISTS(
        SELECT 1 FROM job_report_state
        WHERE run_date = $1
    ) AS exists
    """


def get_export_state_upsert_query() -> str:
    """
    Generate SQL recording a completed export.

    Parameters: $1 run_date, $2 run_timestamp, $3 row_count, $4 output_path.
    """
    return """
    INSERT INTO job_report_state (run_date, run_timestamp, row_count, output_path, exported_at)
    VALUES ($1, $2, $3, $4, NOW())
    ON CONFLICT (run_date)
    DO UPDATE SET
        run_timestamp = EXCLUDED.run_timestamp,
        row_count = EXCLUDED.row_count,
        output_path = EXCLUDED.output_path,
        exported_at = NOW()
    """
