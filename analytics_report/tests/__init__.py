"""
Metric Report Test Suite

Test Modules:
- test_ingestion.py: snapshot validation, cutoff filter, calendar fields
- test_category_stats.py: per-category statistics and PERCENTILE_CONT
- test_time_buckets.py: day / ISO week / month aggregation
- test_windowing.py: ROWS windows, lag, growth, forecast, seasonal factors
- test_classification.py: performance, outlier, anomaly, trend and bands
- test_assembly.py: joined report columns, ratios, ranks, rounding
- test_pipeline.py: orchestration, end-to-end properties, persistence
- test_risk_report.py: customer risk report and monthly cohorts
- test_jobs.py: export job idempotency
- test_api.py: report router contract

Running Tests:
    pip install -e ".[test]"
    pytest -v
"""

__all__ = []
