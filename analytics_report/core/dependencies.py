"""
FastAPI dependency injection module for the metric report backend.

Key Dependencies Provided:
- get_db_session: Async generator yielding database connections from the pool
- get_settings_dependency: Returns the cached Settings singleton
- SettingsDep: Type alias for injecting Settings into endpoints
- DBSessionDep: Type alias for injecting database connections into endpoints

Usage Examples:
    @router.get("/metrics/categories")
    async def list_categories(db: DBSessionDep, settings: SettingsDep):
        rows = await db.fetch(get_observation_snapshot_query(settings.observation_table), cutoff)
"""

from typing import Annotated, AsyncGenerator

from asyncpg import Connection
from fastapi import Depends

from analytics_report.core.config import Settings, get_settings
from analytics_report.core.database import get_db_pool


async def get_db_session() -> AsyncGenerator[Connection, None]:
    """
    Yield an async database connection from the pool.

    The connection is released back to the pool when the endpoint completes,
    regardless of whether the handler raised.

    Yields:
        asyncpg.Connection: An active database connection from the pool.
    """
    pool = await get_db_pool()
    async with pool.acquire() as connection:
        yield connection


def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    Thin wrapper around get_settings() so tests can use
    app.dependency_overrides[get_settings_dependency].
    """
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]

DBSessionDep = Annotated[Connection, Depends(get_db_session)]
