"""
Translation of filter and pagination requests into bounded query plans.

ReportFilters and Pagination are closed structures: every recognized option
is a field, values are validated on construction, and from_dict() rejects
unknown keys. QueryTranslator.translate() is a pure function of its input,
so equal requests always produce equal plans.
"""

import math
from dataclasses import dataclass, fields
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

from soilstore.config import config
from soilstore.errors import ValidationError
from soilstore.report.validation import to_decimal

TABLE = "soil_reports"
COLUMNS = 'id, state, district, village, ph, nitrogen, phosphorus, potassium, "timestamp"'
DEFAULT_ORDER = '"timestamp" DESC, id DESC'

TEXT_FILTERS = ("state", "district", "village")
RANGE_FILTERS = ("ph", "nitrogen", "phosphorus", "potassium")

LIST_LIMIT = 10
BULK_LIMIT = 50

# camelCase names used by the HTTP layer
_ALIASES = {
    "phMin": "ph_min",
    "phMax": "ph_max",
    "nitrogenMin": "nitrogen_min",
    "nitrogenMax": "nitrogen_max",
    "phosphorusMin": "phosphorus_min",
    "phosphorusMax": "phosphorus_max",
    "potassiumMin": "potassium_min",
    "potassiumMax": "potassium_max",
    "startDate": "start_date",
    "endDate": "end_date",
}


def _canonical_keys(data: dict, allowed: set[str]) -> dict:
    """Resolve aliases and reject unknown keys."""
    resolved = {}
    unknown = []
    for key, value in data.items():
        name = _ALIASES.get(key, key)
        if name not in allowed:
            unknown.append(key)
            continue
        resolved[name] = value
    if unknown:
        raise ValidationError({key: f"unknown option '{key}'" for key in unknown})
    return resolved


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_instant(value) -> datetime | date | None:
    """Parse a date filter. Naive datetimes are taken as UTC."""
    if isinstance(value, str):
        raw = value.strip()
        try:
            value = date.fromisoformat(raw) if len(raw) == 10 else datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return value
    return None


def _lower_bound(value: datetime | date) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def _upper_bound(value: datetime | date) -> tuple[str, datetime]:
    """Inclusive upper bound; a plain date covers the whole day."""
    if isinstance(value, datetime):
        return "<=", value
    return "<", datetime.combine(value + timedelta(days=1), time.min, tzinfo=timezone.utc)


def _to_int(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, Decimal) and value.is_finite() and value == value.to_integral_value():
        return int(value)
    return None


@dataclass(frozen=True)
class ReportFilters:
    """Criteria narrowing a soil report query. Unset fields do not filter."""

    state: str | None = None
    district: str | None = None
    village: str | None = None
    ph_min: Decimal | None = None
    ph_max: Decimal | None = None
    nitrogen_min: Decimal | None = None
    nitrogen_max: Decimal | None = None
    phosphorus_min: Decimal | None = None
    phosphorus_max: Decimal | None = None
    potassium_min: Decimal | None = None
    potassium_max: Decimal | None = None
    start_date: datetime | date | None = None
    end_date: datetime | date | None = None

    def __post_init__(self):
        errors = {}

        for name in TEXT_FILTERS:
            value = getattr(self, name)
            if value is None:
                continue
            if not isinstance(value, str):
                errors[name] = f"{name} must be a string"
                continue
            object.__setattr__(self, name, value.strip() or None)

        for field in RANGE_FILTERS:
            bounds = []
            for name in (f"{field}_min", f"{field}_max"):
                value = getattr(self, name)
                if _is_blank(value):
                    object.__setattr__(self, name, None)
                    bounds.append(None)
                    continue
                number = to_decimal(value)
                if number is None:
                    errors[name] = f"{name} must be a number"
                object.__setattr__(self, name, number)
                bounds.append(number)
            low, high = bounds
            if low is not None and high is not None and low > high:
                errors[f"{field}_min"] = f"{field}_min cannot exceed {field}_max"

        for name in ("start_date", "end_date"):
            value = getattr(self, name)
            if _is_blank(value):
                object.__setattr__(self, name, None)
                continue
            instant = _parse_instant(value)
            if instant is None:
                errors[name] = f"{name} must be a date or datetime"
            object.__setattr__(self, name, instant)

        if self.start_date is not None and self.end_date is not None:
            op, upper = _upper_bound(self.end_date)
            lower = _lower_bound(self.start_date)
            if lower > upper or (op == "<" and lower == upper):
                errors["start_date"] = "start_date cannot be after end_date"

        if errors:
            raise ValidationError(errors)

    @classmethod
    def from_dict(cls, data: dict | None) -> "ReportFilters":
        """Build filters from a mapping of snake_case or camelCase options."""
        if not data:
            return cls()
        allowed = {f.name for f in fields(cls)}
        return cls(**_canonical_keys(data, allowed))


@dataclass(frozen=True)
class Pagination:
    """
    Page-based (page/limit) or offset-based (skip/take) paging.

    Page mode is the default: page 1, limit 10. Non-positive pages are
    coerced to 1. Offset mode is for lower-level bulk callers and takes 50
    rows unless told otherwise.
    """

    page: int | None = None
    limit: int | None = None
    skip: int | None = None
    take: int | None = None

    def __post_init__(self):
        errors = {}
        raw_mode = self.skip is not None or self.take is not None
        if raw_mode and (self.page is not None or self.limit is not None):
            raise ValidationError(
                {"pagination": "use either page/limit or skip/take, not both"}
            )

        if raw_mode:
            skip = 0 if self.skip is None else _to_int(self.skip)
            take = BULK_LIMIT if self.take is None else _to_int(self.take)
            if skip is None or skip < 0:
                errors["skip"] = "skip must be a non-negative integer"
            self._check_size("take", take, errors)
            object.__setattr__(self, "skip", skip)
            object.__setattr__(self, "take", take)
        else:
            page = 1 if self.page is None else _to_int(self.page)
            limit = LIST_LIMIT if self.limit is None else _to_int(self.limit)
            if page is None:
                errors["page"] = "page must be a positive integer"
            elif page < 1:
                page = 1
            self._check_size("limit", limit, errors)
            object.__setattr__(self, "page", page)
            object.__setattr__(self, "limit", limit)

        if errors:
            raise ValidationError(errors)

    @staticmethod
    def _check_size(name: str, value, errors: dict) -> None:
        if value is None or value < 1:
            errors[name] = f"{name} must be a positive integer"
        elif value > config.max_page_size:
            errors[name] = f"{name} cannot exceed {config.max_page_size}"

    @property
    def is_offset_based(self) -> bool:
        return self.skip is not None

    @property
    def offset(self) -> int:
        if self.is_offset_based:
            return self.skip
        return (self.page - 1) * self.limit

    @property
    def row_limit(self) -> int:
        return self.take if self.is_offset_based else self.limit

    @classmethod
    def from_dict(cls, data: dict | None) -> "Pagination":
        if not data:
            return cls()
        return cls(**_canonical_keys(data, {"page", "limit", "skip", "take"}))


@dataclass(frozen=True)
class QueryPlan:
    """A bounded, ordered query against soil_reports."""

    where: str
    params: tuple
    offset: int
    limit: int
    order_by: str = DEFAULT_ORDER

    def select_sql(self) -> tuple[str, tuple]:
        query = (
            f"SELECT {COLUMNS} FROM {TABLE} WHERE {self.where} "
            f"ORDER BY {self.order_by} LIMIT %s OFFSET %s"
        )
        return query, self.params + (self.limit, self.offset)

    def count_sql(self) -> tuple[str, tuple]:
        return f"SELECT COUNT(*) AS total FROM {TABLE} WHERE {self.where}", self.params


@dataclass(frozen=True)
class Page:
    """One page of reports plus the totals needed to render page links."""

    records: list
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class QueryTranslator:
    """Turns ReportFilters and Pagination into a QueryPlan."""

    def translate(
        self,
        filters: ReportFilters | dict | None = None,
        pagination: Pagination | dict | None = None,
    ) -> QueryPlan:
        """
        Build the query plan for a filter and pagination request.

        Args:
            filters: ReportFilters, or a mapping accepted by ReportFilters.from_dict
            pagination: Pagination, or a mapping accepted by Pagination.from_dict

        Returns:
            QueryPlan with offset = (page - 1) * limit

        Raises:
            ValidationError: If any option is unknown or invalid
        """
        if not isinstance(filters, ReportFilters):
            filters = ReportFilters.from_dict(filters)
        if not isinstance(pagination, Pagination):
            pagination = Pagination.from_dict(pagination)

        clauses = []
        params = []

        for name in TEXT_FILTERS:
            value = getattr(filters, name)
            if value:
                clauses.append(f"{name} ILIKE %s")
                params.append(f"%{_escape_like(value)}%")

        for field in RANGE_FILTERS:
            low = getattr(filters, f"{field}_min")
            high = getattr(filters, f"{field}_max")
            if low is not None:
                clauses.append(f"{field} >= %s")
                params.append(low)
            if high is not None:
                clauses.append(f"{field} <= %s")
                params.append(high)

        if filters.start_date is not None:
            clauses.append('"timestamp" >= %s')
            params.append(_lower_bound(filters.start_date))
        if filters.end_date is not None:
            op, upper = _upper_bound(filters.end_date)
            clauses.append(f'"timestamp" {op} %s')
            params.append(upper)

        return QueryPlan(
            where=" AND ".join(clauses) if clauses else "TRUE",
            params=tuple(params),
            offset=pagination.offset,
            limit=pagination.row_limit,
        )
