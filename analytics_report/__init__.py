"""
Metric Report Engine Package.

Batch analytics over a timestamped metrics table: per-category statistics,
time-bucketed roll-ups, trailing-window analytics, classification labels and
the assembled report with global ranking columns. Also provides the customer
risk reporting frames built over the banking warehouse extracts.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, database, dependencies and error taxonomy
    - models: Pydantic schemas and enums
    - services: Pipeline stages and risk reporting
    - jobs: Scheduled report export
    - sql: Parameterized SQL queries
"""

__version__ = "1.0.0"
