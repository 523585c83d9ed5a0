"""
API package for the metric report service.

Routers:
- reports: metric report runs (database snapshot and CSV upload),
  category statistics and health
"""

from fastapi import APIRouter

from analytics_report.api.reports import router as reports_router

# Main API router
api_router = APIRouter()
api_router.include_router(reports_router, prefix="/api/reports", tags=["reports"])

__all__ = [
    "api_router",
    "reports_router",
]
