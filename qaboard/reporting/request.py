"""
Report request validation.

Turns a JSON request body into a ReportRequest (or a DrillDownRequest),
rejecting anything the engine cannot run before a single query is issued.
Keys are camelCase as sent by the UI; snake_case aliases are accepted.
"""

from dataclasses import dataclass, field

from qaboard.core.exceptions import ValidationError
from qaboard.reporting.pagination import ALL_ROWS
from qaboard.reporting.registry import ReportType
from qaboard.reporting.sorting import SORT_DIRECTIONS
from qaboard.reporting.types import DateFilter, ReportScope
from qaboard.utils.errors import E
from qaboard.utils.helpers import parse_utc_date

DRILL_DOWN_DEFAULT_LIMIT = 50
DRILL_DOWN_MAX_LIMIT = 1000


@dataclass(frozen=True)
class ReportRequest:
    """A validated report request."""

    project_id: int | None
    dimensions: list[str]
    metrics: list[str]
    date_filter: DateFilter = field(default_factory=DateFilter)
    page: int = 1
    page_size: int | None = None
    sort_column: str | None = None
    sort_direction: str | None = None

    @property
    def scope(self) -> ReportScope:
        return ReportScope(project_id=self.project_id)

    def to_config(self) -> dict:
        """The request as a storable query configuration (camelCase)."""
        return {
            "dimensions": list(self.dimensions),
            "metrics": list(self.metrics),
            "startDate": self.date_filter.start.isoformat() if self.date_filter.start else None,
            "endDate": self.date_filter.end.isoformat() if self.date_filter.end else None,
            "pageSize": self.page_size if self.page_size is not None else ALL_ROWS,
            "sortColumn": self.sort_column,
            "sortDirection": self.sort_direction,
        }


@dataclass(frozen=True)
class DrillDownRequest:
    """A validated drill-down request: one metric and the cell it was read from."""

    project_id: int | None
    metric: str
    match: dict
    date_filter: DateFilter = field(default_factory=DateFilter)
    offset: int = 0
    limit: int = DRILL_DOWN_DEFAULT_LIMIT

    @property
    def scope(self) -> ReportScope:
        return ReportScope(project_id=self.project_id)


def _get(payload: dict, camel: str, snake: str):
    return payload[camel] if camel in payload else payload.get(snake)


def _invalid(message: str, key: str, value) -> ValidationError:
    return ValidationError(message, details={key: value}, code=E.VALIDATION_INVALID)


def _positive_int(value, key: str, minimum: int = 1) -> int:
    kind = "a positive" if minimum > 0 else "a non-negative"
    if isinstance(value, bool):
        raise _invalid(f"{key} must be {kind} integer", key, value)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise _invalid(f"{key} must be {kind} integer", key, value) from None
    if number < minimum or (isinstance(value, float) and not value.is_integer()):
        raise _invalid(f"{key} must be {kind} integer", key, value)
    return number


def _id_list(value, key: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise _invalid(f"{key} must be a list of ids", key, value)
    return value


def _date(value, key: str):
    try:
        return parse_utc_date(value)
    except ValueError:
        raise _invalid(f"Invalid {key}: {value}", key, value) from None


def _project_id(payload: dict, report_type: ReportType) -> int | None:
    if not report_type.requires_project:
        return None
    raw_project = _get(payload, "projectId", "project_id")
    if raw_project in (None, ""):
        raise ValidationError("Project ID is required",
                              details={"projectId": None}, code=E.VALIDATION_REQUIRED)
    return _positive_int(raw_project, "projectId")


def _date_filter(payload: dict) -> DateFilter:
    start = _date(_get(payload, "startDate", "start_date"), "startDate")
    end = _date(_get(payload, "endDate", "end_date"), "endDate")
    if start and end and start > end:
        raise _invalid("startDate must be on or before endDate", "startDate", start.isoformat())
    return DateFilter(start, end)


def parse_page_size(value) -> int | None:
    """``"All"`` or empty → None (every row); otherwise a positive integer."""
    if value is None or value == "":
        return None
    if isinstance(value, str) and value.lower() == ALL_ROWS.lower():
        return None
    return _positive_int(value, "pageSize")


def parse_report_request(payload, report_type: ReportType) -> ReportRequest:
    """Validate a report request body against a report type.

    Checks, in order: body shape, required project id, unknown dimension
    ids, unknown metric ids, empty selections, dates, paging and sort
    direction. The first failure is raised.

    Raises:
        ValidationError: message names the offending field or id.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", code=E.VALIDATION_INVALID)

    project_id = _project_id(payload, report_type)

    dimensions = _id_list(payload.get("dimensions"), "dimensions")
    metrics = _id_list(payload.get("metrics"), "metrics")
    report_type.dimensions.resolve(dimensions)
    report_type.metrics.resolve(metrics)
    if not dimensions or not metrics:
        raise ValidationError(
            "At least one dimension and one metric required",
            details={"dimensions": dimensions, "metrics": metrics},
            code=E.VALIDATION_REQUIRED,
        )

    date_filter = _date_filter(payload)

    raw_page = payload.get("page")
    page = 1 if raw_page in (None, "") else _positive_int(raw_page, "page")
    page_size = parse_page_size(_get(payload, "pageSize", "page_size"))

    sort_column = _get(payload, "sortColumn", "sort_column") or None
    if sort_column is not None and not isinstance(sort_column, str):
        raise _invalid("sortColumn must be a string", "sortColumn", sort_column)
    sort_direction = _get(payload, "sortDirection", "sort_direction") or None
    if sort_direction is not None:
        if not isinstance(sort_direction, str) or sort_direction.lower() not in SORT_DIRECTIONS:
            raise _invalid(f"Unsupported sort direction: {sort_direction}",
                           "sortDirection", sort_direction)
        sort_direction = sort_direction.lower()

    return ReportRequest(
        project_id=project_id,
        dimensions=dimensions,
        metrics=metrics,
        date_filter=date_filter,
        page=page,
        page_size=page_size,
        sort_column=sort_column,
        sort_direction=sort_direction,
    )


def parse_drill_down_request(payload, report_type: ReportType) -> DrillDownRequest:
    """Validate a drill-down body against a report type.

    ``dimensions`` maps dimension id → the cell value shown in the report
    row (its display object, or the bare id / ISO date). Each is converted
    back into the raw group value the dimension's field holds; a null id
    selects records whose field is null.

    Raises:
        ValidationError: message names the offending field or id.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", code=E.VALIDATION_INVALID)

    project_id = _project_id(payload, report_type)

    metric_id = payload.get("metric")
    if not metric_id or not isinstance(metric_id, str):
        raise ValidationError("metric is required", details={"metric": metric_id},
                              code=E.VALIDATION_REQUIRED)
    report_type.metrics.resolve([metric_id])

    cells = payload.get("dimensions") or {}
    if not isinstance(cells, dict):
        raise _invalid("dimensions must map dimension ids to cell values", "dimensions", cells)
    match = {}
    for dimension in report_type.dimensions.resolve(list(cells)):
        value = dimension.drill_value(cells[dimension.id])
        if dimension.is_date and value is not None:
            value = _date(value, dimension.id)
        match[dimension.group_by_field] = value

    date_filter = _date_filter(payload)

    raw_offset = payload.get("offset")
    offset = 0 if raw_offset in (None, "") else _positive_int(raw_offset, "offset", minimum=0)
    raw_limit = payload.get("limit")
    limit = DRILL_DOWN_DEFAULT_LIMIT if raw_limit in (None, "") else _positive_int(raw_limit, "limit")
    if limit > DRILL_DOWN_MAX_LIMIT:
        raise _invalid(f"limit must be at most {DRILL_DOWN_MAX_LIMIT}", "limit", raw_limit)

    return DrillDownRequest(
        project_id=project_id,
        metric=metric_id,
        match=match,
        date_filter=date_filter,
        offset=offset,
        limit=limit,
    )
