"""Reports package."""

from finance_tracker.queries.executor import CSV_COLUMNS, ReportExecutor

__all__ = ["CSV_COLUMNS", "ReportExecutor"]
