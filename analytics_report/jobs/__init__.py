"""
Scheduled export jobs for the metric report service.

- report_export.export_metric_report: daily metric report to CSV and the
  report table, once per run date (force=True to re-export)
- report_export.export_customer_risk_report: customer risk report and
  monthly cohorts to CSV

Idempotency is tracked in the job_report_state table keyed by run_date.
"""

from analytics_report.jobs.report_export import (
    ExportState,
    check_export_exists,
    mark_report_exported,
    write_report_csv,
    load_snapshot,
    export_metric_report,
    export_customer_risk_report,
)

__all__ = [
    'ExportState',
    'check_export_exists',
    'mark_report_exported',
    'write_report_csv',
    'load_snapshot',
    'export_metric_report',
    'export_customer_risk_report',
]
