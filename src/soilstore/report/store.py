import uuid
from datetime import datetime, timezone
from typing import Callable, List, Tuple

import psycopg

from soilstore import db, errors
from soilstore.logger import get_logger, instrumented
from soilstore.report.query import Page, Pagination, QueryTranslator, ReportFilters
from soilstore.report.repository import SoilReportRepository
from soilstore.report.validation import validate_create, validate_update
from soilstore.retry import RetryExecutor

logger = get_logger(__name__)


def _parse_id(report_id) -> uuid.UUID:
    """Malformed ids are reported exactly like ids that never existed."""
    if isinstance(report_id, uuid.UUID):
        return report_id
    try:
        return uuid.UUID(str(report_id))
    except ValueError:
        raise errors.NotFoundError(report_id) from None


class RecordStore:
    """
    CRUD surface for soil reports.

    Input is validated before any connection is requested. Each operation
    then runs as one transaction through the retry executor; driver
    failures are classified as ConnectionError or UnknownError inside each
    attempt. ValidationError and NotFoundError are never retried.
    """

    def __init__(
        self,
        manager: db.ConnectionManager = None,
        retry: RetryExecutor = None,
        translator: QueryTranslator = None,
        repository: SoilReportRepository = None,
    ):
        self.manager = manager or db.get_manager()
        self.retry = retry or RetryExecutor(is_retryable=errors.is_transient)
        self.translator = translator or QueryTranslator()
        self.repository = repository or SoilReportRepository()

    def _run(self, description: str, work: Callable[[psycopg.Connection], object]):
        """Run ``work(conn)`` in a single transaction, with retries."""

        def attempt():
            try:
                with self.manager.connection() as conn:
                    return work(conn)
            except (psycopg.OperationalError, psycopg.InterfaceError) as e:
                raise errors.ConnectionError(
                    f"Database unavailable during {description}"
                ) from e
            except psycopg.Error as e:
                raise errors.UnknownError(
                    f"Unexpected database error during {description}"
                ) from e

        return self.retry.execute_with_retry(attempt, description=description)

    # ── READ ──────────────────────────────────────────────

    @instrumented("find_all")
    def find_all(
        self,
        filters: ReportFilters | dict | None = None,
        pagination: Pagination | dict | None = None,
    ) -> Tuple[List[dict], int]:
        """
        Find reports matching the filters, newest first.

        Returns:
            (records on the requested page, total matching records)
        """
        plan = self.translator.translate(filters, pagination)

        def work(conn):
            records = self.repository.find(conn, plan)
            total = self.repository.count(conn, plan)
            return records, total

        records, total = self._run("find_all", work)
        logger.info(f"Retrieved {len(records)} of {total} soil reports")
        return records, total

    def find_page(
        self,
        filters: ReportFilters | dict | None = None,
        pagination: Pagination | dict | None = None,
    ) -> Page:
        """find_all() packaged with the page metadata listings need."""
        if not isinstance(pagination, Pagination):
            pagination = Pagination.from_dict(pagination)
        records, total = self.find_all(filters, pagination)
        limit = pagination.row_limit
        return Page(
            records=records,
            total=total,
            page=pagination.offset // limit + 1,
            limit=limit,
        )

    @instrumented("find_by_id")
    def find_by_id(self, report_id: str) -> dict:
        """
        Get a report by ID.

        Raises:
            NotFoundError: If no report has this id
        """
        key = _parse_id(report_id)
        report = self._run("find_by_id", lambda conn: self.repository.get_by_id(conn, key))
        if report is None:
            raise errors.NotFoundError(report_id)
        return report

    # ── WRITE ─────────────────────────────────────────────

    @instrumented("create")
    def create(self, data: dict) -> dict:
        """
        Validate and store a new report.

        The id and timestamp are assigned here; any supplied values are ignored.

        Raises:
            ValidationError: Listing every invalid field
        """
        cleaned = validate_create(data)
        report_id = uuid.uuid4()
        timestamp = datetime.now(timezone.utc)

        report = self._run(
            "create",
            lambda conn: self.repository.create(conn, report_id, timestamp, cleaned),
        )
        logger.info(f"Created soil report with ID {report['id']}")
        return report

    @instrumented("update")
    def update(self, report_id: str, data: dict) -> dict:
        """
        Apply a partial update to a report. Last write wins.

        Only supplied fields change; id and timestamp cannot be changed.
        The payload is validated before the existence check, so an invalid
        payload for a missing id raises ValidationError without touching
        the database.

        Raises:
            ValidationError: Listing every invalid supplied field
            NotFoundError: If no report has this id
        """
        cleaned = validate_update(data)
        key = _parse_id(report_id)

        def work(conn):
            existing = self.repository.get_by_id(conn, key)
            if existing is None or not cleaned:
                return existing
            return self.repository.update(conn, key, cleaned)

        report = self._run("update", work)
        if report is None:
            raise errors.NotFoundError(report_id)
        logger.info(f"Updated soil report with ID {report_id}")
        return report

    @instrumented("delete")
    def delete(self, report_id: str) -> None:
        """
        Permanently delete a report.

        Raises:
            NotFoundError: If no report has this id
        """
        key = _parse_id(report_id)

        def work(conn):
            if self.repository.get_by_id(conn, key) is None:
                return False
            return self.repository.delete(conn, key)

        if not self._run("delete", work):
            raise errors.NotFoundError(report_id)
        logger.info(f"Deleted soil report with ID {report_id}")

    # ── HEALTH ────────────────────────────────────────────

    def health_check(self) -> bool:
        """True if the database answers a trivial query."""
        return self.manager.health_check()
