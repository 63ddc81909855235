import uuid
from datetime import datetime
from typing import List, Optional

import psycopg

from soilstore import db
from soilstore.report.query import COLUMNS, TABLE, QueryPlan
from soilstore.report.validation import FIELDS


def _to_report(row: Optional[dict]) -> Optional[dict]:
    """Render the id as an opaque string."""
    if row is None:
        return None
    return {**row, "id": str(row["id"])}


class SoilReportRepository:
    """
    Repository for soil report data access.
    Encapsulates all SQL for the soil_reports table.

    Every method runs on a connection borrowed by the caller, so several
    statements can share one transaction.
    """

    def find(self, conn: psycopg.Connection, plan: QueryPlan) -> List[dict]:
        """Get one bounded, ordered page of reports."""
        query, params = plan.select_sql()
        return [_to_report(row) for row in db.fetch_all(conn, query, params)]

    def count(self, conn: psycopg.Connection, plan: QueryPlan) -> int:
        """Count all reports matching the plan's filters, ignoring paging."""
        query, params = plan.count_sql()
        return db.fetch_one(conn, query, params)["total"]

    def get_by_id(self, conn: psycopg.Connection, report_id: uuid.UUID) -> Optional[dict]:
        """Get a report by ID."""
        row = db.fetch_one(conn, f"SELECT {COLUMNS} FROM {TABLE} WHERE id = %s", (report_id,))
        return _to_report(row)

    def create(
        self,
        conn: psycopg.Connection,
        report_id: uuid.UUID,
        timestamp: datetime,
        data: dict,
    ) -> dict:
        """Insert a new report and return the stored row."""
        row = db.fetch_one(
            conn,
            f"""
            INSERT INTO {TABLE}
                (id, state, district, village, ph, nitrogen, phosphorus, potassium, "timestamp")
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {COLUMNS}
            """,
            (
                report_id,
                data["state"],
                data["district"],
                data["village"],
                data["ph"],
                data["nitrogen"],
                data["phosphorus"],
                data["potassium"],
                timestamp,
            ),
        )
        return _to_report(row)

    def update(
        self, conn: psycopg.Connection, report_id: uuid.UUID, data: dict
    ) -> Optional[dict]:
        """
        Overwrite the given fields of a report.
        Returns the updated row, or None if the report does not exist.
        """
        columns = [f for f in FIELDS if f in data]
        assignments = ", ".join(f"{column} = %s" for column in columns)
        row = db.fetch_one(
            conn,
            f"UPDATE {TABLE} SET {assignments} WHERE id = %s RETURNING {COLUMNS}",
            tuple(data[column] for column in columns) + (report_id,),
        )
        return _to_report(row)

    def delete(self, conn: psycopg.Connection, report_id: uuid.UUID) -> bool:
        """Delete a report. Returns True if a row was removed."""
        return db.execute(conn, f"DELETE FROM {TABLE} WHERE id = %s", (report_id,)) > 0
