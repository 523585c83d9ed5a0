"""
Observation Snapshot Ingestion Service

Reads the observation snapshot a report run works on, validates it, applies
the cutoff filter and derives the calendar fields every later stage groups by.

Snapshot Sources:
- CSV upload: bulk file with one row per observation
- BigQuery: warehouse table, filtered by cutoff in the query
- PostgreSQL: observation table read through the asyncpg pool

Every source goes through the same validation path and returns
(DataFrame or None, list of ValidationError), so callers treat bad input
uniformly regardless of where it came from.

Calendar fields are derived from created_at only; updated_at is carried
through untouched.
"""

from datetime import datetime
from typing import Any, BinaryIO, List, Optional, Tuple
import io
import logging

import pandas as pd
from google.cloud import bigquery

from analytics_report.core.database import get_db_pool
from analytics_report.core.errors import ReportConfigurationError
from analytics_report.models import ValidationError
from analytics_report.sql.report_queries import get_observation_snapshot_query

# Configure module logger
logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

OBSERVATION_REQUIRED_COLUMNS: List[str] = [
    'id',
    'created_at',
    'updated_at',
    'metric',
    'category',
]

TIMESTAMP_COLUMNS: List[str] = ['created_at', 'updated_at']

# Calendar columns added by derive_calendar_fields
CALENDAR_COLUMNS: List[str] = [
    'obs_date',
    'obs_year',
    'obs_month',
    'obs_week',
    'obs_iso_year',
    'obs_day',
    'obs_quarter',
    'obs_day_of_week',
    'obs_hour',
]

# Number of offending row indices quoted in a validation message
_MAX_REPORTED_ROWS: int = 5


# =============================================================================
# HELPERS
# =============================================================================

def _lowercase_columns(df: pd.DataFrame) -> pd.DataFrame:
    out = df.copy()
    out.columns = out.columns.str.lower()
    return out


def _to_naive_utc(values: pd.Series) -> pd.Series:
    """Parse timestamps; tz-aware values are converted to UTC, then made naive."""
    return pd.to_datetime(values, utc=True, errors='coerce').dt.tz_localize(None)


def normalize_timestamp(value: Any, name: str = 'timestamp') -> pd.Timestamp:
    """
    Convert a configured timestamp into a naive UTC timestamp comparable with created_at.

    Raises:
        ReportConfigurationError: If the value is missing or cannot be parsed.
    """
    if value is None:
        raise ReportConfigurationError(f"{name} is required")
    try:
        ts = pd.Timestamp(value)
    except (TypeError, ValueError) as e:
        raise ReportConfigurationError(f"invalid {name} {value!r}: {e}") from e
    if pd.isna(ts):
        raise ReportConfigurationError(f"invalid {name} {value!r}")
    if ts.tzinfo is not None:
        ts = ts.tz_convert('UTC').tz_localize(None)
    return ts


def normalize_cutoff(cutoff: Any) -> pd.Timestamp:
    """Normalize the inclusion cutoff (see normalize_timestamp)."""
    return normalize_timestamp(cutoff, 'cutoff')


def _row_error(field: str, message: str, mask: pd.Series, df: pd.DataFrame) -> ValidationError:
    indices = df[mask].index.tolist()[:_MAX_REPORTED_ROWS]
    return ValidationError(
        field=field,
        message=f"{message}. First invalid rows at indices: {indices}",
        # Convert 0-based DataFrame index to 1-based row number
        row_number=(int(indices[0]) + 1) if indices else None,
    )


# =============================================================================
# VALIDATION FUNCTIONS
# =============================================================================

def validate_observation_columns(df: pd.DataFrame) -> List[ValidationError]:
    """
    Validate that every required observation column is present.

    Column matching is case-insensitive; extra columns are allowed.

    Args:
        df: Raw snapshot DataFrame

    Returns:
        List of ValidationError objects for any missing columns
    """
    errors: List[ValidationError] = []
    df_columns = set(df.columns.str.lower())
    for col in OBSERVATION_REQUIRED_COLUMNS:
        if col not in df_columns:
            errors.append(ValidationError(
                field=col,
                message=f"Required column '{col}' is missing from the observation snapshot",
                row_number=None
            ))
    return errors


def validate_observation_types(df: pd.DataFrame) -> List[ValidationError]:
    """
    Validate value types and identifier uniqueness.

    Checks:
    - created_at is present and parseable on every row
    - updated_at is parseable where present (nulls allowed)
    - metric is numeric and non-null
    - category is non-null
    - id is unique

    Args:
        df: Snapshot DataFrame (required columns already verified)

    Returns:
        List of ValidationError objects for any type issues
    """
    errors: List[ValidationError] = []
    df_lower = _lowercase_columns(df)

    created = _to_naive_utc(df_lower['created_at'])
    invalid_created = created.isna()
    if invalid_created.any():
        errors.append(_row_error(
            'created_at',
            f"Found {int(invalid_created.sum())} missing or invalid created_at values",
            invalid_created,
            df_lower,
        ))

    updated = _to_naive_utc(df_lower['updated_at'])
    invalid_updated = updated.isna() & df_lower['updated_at'].notna()
    if invalid_updated.any():
        errors.append(_row_error(
            'updated_at',
            f"Found {int(invalid_updated.sum())} invalid updated_at values",
            invalid_updated,
            df_lower,
        ))

    metric = pd.to_numeric(df_lower['metric'], errors='coerce')
    invalid_metric = metric.isna()
    if invalid_metric.any():
        errors.append(_row_error(
            'metric',
            f"Found {int(invalid_metric.sum())} missing or non-numeric metric values",
            invalid_metric,
            df_lower,
        ))

    missing_category = df_lower['category'].isna()
    if missing_category.any():
        errors.append(_row_error(
            'category',
            f"Found {int(missing_category.sum())} rows without a category",
            missing_category,
            df_lower,
        ))

    duplicated = df_lower['id'].duplicated(keep=False)
    if duplicated.any():
        errors.append(_row_error(
            'id',
            f"Found {int(duplicated.sum())} rows sharing a duplicate id",
            duplicated,
            df_lower,
        ))

    return errors


def validate_snapshot(df: pd.DataFrame) -> Tuple[Optional[pd.DataFrame], List[ValidationError]]:
    """
    Run column and type validation, then normalize a valid snapshot.

    Returns:
        Tuple of (normalized DataFrame or None, list of validation errors)
    """
    column_errors = validate_observation_columns(df)
    if column_errors:
        return None, column_errors

    type_errors = validate_observation_types(df)
    if type_errors:
        return None, type_errors

    return normalize_observations(df), []


# =============================================================================
# TRANSFORMATION FUNCTIONS
# =============================================================================

def normalize_observations(df: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize a validated snapshot.

    - Column names lowercased; only the required columns are kept
    - Timestamps parsed to naive UTC
    - metric coerced to float, category to str

    The input DataFrame is not modified.
    """
    out = _lowercase_columns(df)[OBSERVATION_REQUIRED_COLUMNS].copy()
    for col in TIMESTAMP_COLUMNS:
        out[col] = _to_naive_utc(out[col])
    out['metric'] = pd.to_numeric(out['metric']).astype(float)
    out['category'] = out['category'].astype(str)
    return out.reset_index(drop=True)


def filter_observations(df: pd.DataFrame, cutoff: Any) -> pd.DataFrame:
    """
    Keep observations created at or after the cutoff.

    An empty result is a valid outcome, not an error.

    Args:
        df: Normalized snapshot
        cutoff: Inclusion boundary (datetime, date, string or Timestamp)

    Returns:
        Filtered copy of the snapshot with a fresh index
    """
    boundary = normalize_cutoff(cutoff)
    filtered = df[df['created_at'] >= boundary].reset_index(drop=True)
    logger.info(
        f"Cutoff {boundary.isoformat()} kept {len(filtered)} of {len(df)} observations"
    )
    return filtered


def derive_calendar_fields(df: pd.DataFrame) -> pd.DataFrame:
    """
    Add calendar fields derived from created_at.

    Added columns:
    - obs_date: created_at truncated to the day
    - obs_year, obs_month, obs_day, obs_quarter, obs_hour
    - obs_week / obs_iso_year: ISO week-of-year and its ISO year
    - obs_day_of_week: ISO weekday (Monday=1 .. Sunday=7)
    """
    out = df.copy()
    created = out['created_at']
    iso = created.dt.isocalendar()

    out['obs_date'] = created.dt.normalize()
    out['obs_year'] = created.dt.year.astype('int64')
    out['obs_month'] = created.dt.month.astype('int64')
    out['obs_week'] = iso['week'].astype('int64')
    out['obs_iso_year'] = iso['year'].astype('int64')
    out['obs_day'] = created.dt.day.astype('int64')
    out['obs_quarter'] = created.dt.quarter.astype('int64')
    out['obs_day_of_week'] = iso['day'].astype('int64')
    out['obs_hour'] = created.dt.hour.astype('int64')
    return out


def prepare_observations(df: pd.DataFrame, cutoff: Any) -> pd.DataFrame:
    """
    Stage 1 of the report: filter by cutoff and derive calendar fields.

    Expects a normalized snapshot (see validate_snapshot).
    """
    return derive_calendar_fields(filter_observations(df, cutoff))


# =============================================================================
# SNAPSHOT SOURCES
# =============================================================================

def load_observations_csv(
    file: BinaryIO
) -> Tuple[Optional[pd.DataFrame], List[ValidationError]]:
    """
    Parse and validate an observation snapshot from CSV.

    Args:
        file: Binary or text file object containing CSV data

    Returns:
        Tuple of (normalized DataFrame or None, list of validation errors)
    """
    try:
        content = file.read()
        if isinstance(content, bytes):
            file_like = io.BytesIO(content)
        else:
            file_like = io.StringIO(content)
        df = pd.read_csv(file_like)
    except (ValueError, UnicodeDecodeError, pd.errors.ParserError) as e:
        return None, [ValidationError(
            field='file',
            message=f'Failed to parse CSV file: {str(e)}',
            row_number=None
        )]

    logger.info(f"Parsed CSV with {len(df)} rows and {len(df.columns)} columns")
    return validate_snapshot(df)


def load_observations_bigquery(
    project: str,
    table_name: str,
    cutoff: Optional[datetime] = None
) -> Tuple[Optional[pd.DataFrame], List[ValidationError]]:
    """
    Query and validate an observation snapshot from BigQuery.

    The cutoff is pushed down into the query when given; the report still
    applies it again so every source is filtered the same way.

    Args:
        project: BigQuery project ID
        table_name: Fully qualified table name
        cutoff: Optional inclusion boundary for created_at

    Returns:
        Tuple of (normalized DataFrame or None, list of validation errors)
    """
    columns_str = ', '.join(OBSERVATION_REQUIRED_COLUMNS)
    query = f"""
        SELECT {columns_str}
        FROM `{table_name}`
    """
    job_config = None
    if cutoff is not None:
        query += " WHERE created_at >= @cutoff"
        job_config = bigquery.QueryJobConfig(
            query_parameters=[
                bigquery.ScalarQueryParameter(
                    'cutoff', 'TIMESTAMP', normalize_cutoff(cutoff).to_pydatetime()
                ),
            ]
        )

    try:
        client = bigquery.Client(project=project)
        logger.info(f"Executing BigQuery snapshot query against {table_name}")
        df = client.query(query, job_config=job_config).result().to_dataframe()
    except Exception as e:
        logger.exception("BigQuery snapshot query failed")
        return None, [ValidationError(
            field='bigquery',
            message=f'Failed to query BigQuery: {str(e)}',
            row_number=None
        )]

    logger.info(f"BigQuery returned {len(df)} rows")
    return validate_snapshot(df)


async def fetch_observations(
    table_name: str,
    cutoff: Any,
    conn: Optional[Any] = None,
) -> Tuple[Optional[pd.DataFrame], List[ValidationError]]:
    """
    Read the observation snapshot from PostgreSQL.

    Args:
        table_name: Observation table name
        cutoff: Inclusion boundary pushed down into the query
        conn: Connection to read on (e.g. a request-scoped one); when omitted
            a connection is acquired from the pool

    Returns:
        Tuple of (normalized DataFrame or None, list of validation errors).
        An empty table yields an empty (valid) DataFrame.
    """
    boundary = normalize_cutoff(cutoff).to_pydatetime()
    query = get_observation_snapshot_query(table_name)

    if conn is not None:
        rows = await conn.fetch(query, boundary)
    else:
        pool = await get_db_pool()
        async with pool.acquire() as pooled:
            rows = await pooled.fetch(query, boundary)

    logger.info(f"Fetched {len(rows)} observations from {table_name}")
    df = pd.DataFrame([dict(row) for row in rows], columns=OBSERVATION_REQUIRED_COLUMNS)
    return validate_snapshot(df)
