"""
Core infrastructure package for the metric report backend.

Provides:
- Configuration management via pydantic-settings
- Async PostgreSQL database connectivity via asyncpg
- FastAPI dependency injection utilities
- The pipeline error taxonomy

Usage Examples:
    from analytics_report.core import get_settings, get_db_pool, ReportConfigurationError
"""

# =============================================================================
# Re-exports from analytics_report.core.config
# =============================================================================
from analytics_report.core.config import Settings, get_settings

# =============================================================================
# Re-exports from analytics_report.core.database
# =============================================================================
from analytics_report.core.database import init_db, close_db, get_db_pool

# =============================================================================
# Re-exports from analytics_report.core.errors
# =============================================================================
from analytics_report.core.errors import (
    ReportError,
    ReportConfigurationError,
    MissingCategoryStatisticsError,
)

__all__ = [
    'Settings',
    'get_settings',
    'init_db',
    'close_db',
    'get_db_pool',
    'ReportError',
    'ReportConfigurationError',
    'MissingCategoryStatisticsError',
]
