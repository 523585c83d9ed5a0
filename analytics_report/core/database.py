"""
Async PostgreSQL connection pool for the metric report backend.

The pool is the single access path to the observation snapshot table and the
report sink table. It is created lazily and shared by the API, the export job
and the ingestion adapters.

Key Components:
- Global connection pool singleton (_pool)
- init_db(): Initialize the connection pool at application startup
- get_db_pool(): Get the pool instance (initializes if needed)
- close_db(): Gracefully close the pool at application shutdown
- execute_many(): Bulk writes inside one transaction

Connection Pool Configuration:
- min_size: 1 (reports are batch workloads, one warm connection is enough)
- max_size: 5
- command_timeout: 300 seconds (snapshot reads can be large)

Usage:
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(query, cutoff)
"""

from typing import List, Optional

import asyncpg
from asyncpg import Pool

from analytics_report.core.config import get_settings


# =============================================================================
# Global Pool Singleton
# =============================================================================

# None until init_db() is called
_pool: Optional[Pool] = None


# =============================================================================
# Pool Lifecycle Functions
# =============================================================================

async def init_db() -> Pool:
    """
    Initialize the database connection pool.

    Idempotent: returns the existing pool when one is already open.

    Returns:
        Pool: The asyncpg connection pool instance.

    Raises:
        asyncpg.PostgresError: If connection to the database fails.
        OSError: If the database host is unreachable.
    """
    global _pool

    if _pool is None:
        settings = get_settings()
        _pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            min_size=1,
            max_size=5,
            command_timeout=300,
        )

    return _pool


async def get_db_pool() -> Pool:
    """
    Get the database connection pool, initializing if needed.

    Returns:
        Pool: The asyncpg connection pool instance.
    """
    global _pool

    if _pool is None:
        await init_db()

    assert _pool is not None, "Pool should be initialized after init_db()"

    return _pool


async def close_db() -> None:
    """
    Close the database connection pool gracefully.

    Safe to call when the pool was never opened.
    """
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None


# =============================================================================
# Query Execution Helpers
# =============================================================================

async def execute_many(query: str, args_list: List[tuple]) -> None:
    """
    Execute a command for multiple sets of arguments inside one transaction.

    A failed bulk write leaves no rows behind.

    Args:
        query: SQL command string with parameter placeholders.
        args_list: One tuple of parameters per execution.
    """
    pool = await get_db_pool()

    async with pool.acquire() as conn:
        async with conn.transaction():
            await conn.executemany(query, args_list)
