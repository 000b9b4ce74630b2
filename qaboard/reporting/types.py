"""
Report value types.

Everything here is recomputed per request:
    - ReportScope / DateFilter: what a report runs over
    - NamedValue / DateBucket: display objects placed in dimension columns
    - ReportResult: one page of rows plus the full sorted grid
    - DrillDownPage: one page of the records behind a report cell
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from qaboard.utils.helpers import day_start, next_day_start, parse_utc_date

# Group label emitted for null grouping values on both aggregation paths.
UNKNOWN_GROUP = "unknown"

# Colour given to the "None" status bucket.
DEFAULT_NONE_COLOR = "#6b7280"


def truncate_to_day(value) -> str | None:
    """Truncate a timestamp to its UTC day as ``YYYY-MM-DDT00:00:00.000Z``.

    Idempotent: an already-truncated string maps to itself. Naive datetimes
    are read as UTC. Returns None for null and for the unknown group label.
    """
    if value is None or value == UNKNOWN_GROUP:
        return None
    day = parse_utc_date(value)
    if day is None:
        return None
    return f"{day.isoformat()}T00:00:00.000Z"


@dataclass(frozen=True)
class ReportScope:
    """Records a report may see. ``project_id=None`` means every project."""

    project_id: int | None = None

    @property
    def cross_project(self) -> bool:
        return self.project_id is None


@dataclass(frozen=True)
class DateFilter:
    """Inclusive calendar-day range; either side may be open."""

    start: date | None = None
    end: date | None = None

    def bounds(self) -> tuple[datetime | None, datetime | None]:
        """Return ``(start, end)`` as UTC datetimes; ``end`` is exclusive.

        The start is midnight of the start day, the end is midnight of the
        day after the end day, so every record on the end day is included.
        """
        lower = day_start(self.start) if self.start else None
        upper = next_day_start(self.end) if self.end else None
        return lower, upper

    @property
    def is_open(self) -> bool:
        return self.start is None and self.end is None


# ═════════════════════════════════════════════════════════════════════════════
# DISPLAY VALUES
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class NamedValue:
    """Display object for an entity-backed dimension cell.

    ``missing`` marks the None sentinel, which sorts after every real value.
    """

    id: Any
    name: str | None
    extra: dict = field(default_factory=dict)
    missing: bool = False

    def sort_value(self):
        if self.missing:
            return None
        if self.name not in (None, ""):
            return self.name
        return self.id

    def label(self) -> str:
        return str(self.name) if self.name is not None else str(self.id)

    def to_dict(self) -> dict:
        return {"name": self.name, "id": self.id, **self.extra}


@dataclass(frozen=True)
class DateBucket:
    """Display object for a date dimension cell, keyed by the dimension's date key."""

    date_key: str
    iso_date: str | None

    @property
    def missing(self) -> bool:
        return self.iso_date is None

    def sort_value(self):
        return self.iso_date

    def label(self) -> str:
        return self.iso_date[:10] if self.iso_date else "None"

    def to_dict(self) -> dict:
        if self.iso_date is None:
            return {self.date_key: None, "name": "None"}
        return {self.date_key: self.iso_date}


def none_value(**extra) -> NamedValue:
    """The sentinel shown when the grouped value is null."""
    return NamedValue(id=None, name="None", extra=extra, missing=True)


def unknown_value(raw) -> NamedValue:
    """The sentinel shown when the grouped value has no enumerated entity."""
    return NamedValue(id=raw, name="Unknown")


def serialize_row(row: dict) -> dict:
    """Convert display objects in a report row into plain JSON values."""
    return {
        key: value.to_dict() if hasattr(value, "to_dict") else value
        for key, value in row.items()
    }


@dataclass
class ReportResult:
    """Paginated report output; ``all_results`` is the full sorted grid."""

    results: list[dict]
    all_results: list[dict]
    total_count: int
    page: int
    page_size: int

    def to_dict(self) -> dict:
        return {
            "results": [serialize_row(r) for r in self.results],
            "allResults": [serialize_row(r) for r in self.all_results],
            "totalCount": self.total_count,
            "page": self.page,
            "pageSize": self.page_size,
        }


@dataclass
class DrillDownPage:
    """One page of the records behind a report cell; ``total`` spans every page."""

    records: list[dict]
    total: int
    offset: int
    limit: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.records) < self.total

    def to_dict(self) -> dict:
        return {
            "data": self.records,
            "total": self.total,
            "offset": self.offset,
            "limit": self.limit,
            "hasMore": self.has_more,
        }
