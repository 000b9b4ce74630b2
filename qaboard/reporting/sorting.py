"""Row ordering for report grids."""

from collections.abc import Mapping
from dataclasses import dataclass
from numbers import Number

from qaboard.core.exceptions import ValidationError
from qaboard.utils.errors import E

SORT_DIRECTIONS = ("asc", "desc")


@dataclass(frozen=True)
class SortSpec:
    """A resolved sort: the row key to order by and its direction."""

    column: str
    direction: str = "asc"
    by_metric: bool = False

    @property
    def descending(self) -> bool:
        return self.direction == "desc"


def resolve_sort(sort_column: str | None, sort_direction: str | None,
                 dimensions: list, metrics: list,
                 aliases: Mapping[str, str] | None = None) -> SortSpec | None:
    """Resolve a requested sort column against the selected dimensions and metrics.

    Dimension columns are matched by id. Metric columns are matched by id,
    after applying ``aliases``, and mapped to the metric's row label.
    Without an explicit column the first selected date dimension sorts
    ascending; with no date dimension rows keep emission order (None).

    Raises:
        ValidationError: unknown direction, or a column that is neither a
                         selected dimension nor a selected metric.
    """
    if not sort_column:
        date_dimension = next((d for d in dimensions if d.is_date), None)
        if date_dimension is None:
            return None
        return SortSpec(date_dimension.id, "asc")

    direction = (sort_direction or "asc").lower()
    if direction not in SORT_DIRECTIONS:
        raise ValidationError(
            f"Unsupported sort direction: {sort_direction}",
            details={"sortDirection": sort_direction},
            code=E.VALIDATION_INVALID,
        )

    for dimension in dimensions:
        if dimension.id == sort_column:
            return SortSpec(dimension.id, direction)

    metric_id = (aliases or {}).get(sort_column, sort_column)
    for metric in metrics:
        if metric.id == metric_id:
            return SortSpec(metric.label, direction, by_metric=True)

    raise ValidationError(
        f"Unsupported sort column: {sort_column}",
        details={"sortColumn": sort_column},
        code=E.VALIDATION_INVALID,
    )


def _sort_key(value):
    """Comparable key for a cell, or None when the cell sorts last."""
    if value is None:
        return None
    if hasattr(value, "sort_value"):
        value = value.sort_value()
        if value is None:
            return None
    if isinstance(value, Number) and not isinstance(value, bool):
        return (0, value, "")
    text = str(value)
    return (1, text.casefold(), text)


def sort_rows(rows: list[dict], spec: SortSpec | None) -> list[dict]:
    """Return ``rows`` ordered by ``spec``; missing keys go last either way.

    Equal keys keep their incoming order in both directions.
    """
    if spec is None:
        return list(rows)

    keyed, missing = [], []
    for row in rows:
        key = _sort_key(row.get(spec.column))
        if key is None:
            missing.append(row)
        else:
            keyed.append((key, row))

    keyed.sort(key=lambda item: item[0], reverse=spec.descending)
    return [row for _, row in keyed] + missing
