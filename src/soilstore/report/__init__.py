"""
Soil Report

This package provides the data-access layer for soil test reports:
validation, query translation, SQL, and the RecordStore CRUD surface.
"""

from soilstore.report.query import Page, Pagination, QueryPlan, QueryTranslator, ReportFilters
from soilstore.report.repository import SoilReportRepository
from soilstore.report.store import RecordStore

__all__ = [
    "Page",
    "Pagination",
    "QueryPlan",
    "QueryTranslator",
    "RecordStore",
    "ReportFilters",
    "SoilReportRepository",
]
