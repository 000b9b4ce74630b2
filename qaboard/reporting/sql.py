"""
SQLAlchemy-backed dimensions and metrics.

A RecordSource describes the scoped set of rows a report type aggregates
over (base model, joins, soft-delete filters, which request fields map to
which columns). Metrics compute either natively with ``GROUP BY`` or by
fetching the rows and folding them in Python; both paths emit the same
partial-row shape. Metrics also drill down: they list the records behind
one report cell through the same source and filters.
"""

import logging
from collections.abc import Callable, Iterable

from sqlalchemy import distinct, func, select

from qaboard.models import db
from qaboard.reporting.registry import DateDimensionMixin, DimensionConfig, MetricConfig
from qaboard.reporting.types import (
    UNKNOWN_GROUP,
    DateFilter,
    DrillDownPage,
    NamedValue,
    ReportScope,
    none_value,
    truncate_to_day,
)
from qaboard.utils.helpers import day_start, next_day_start, parse_utc_date

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# RECORD SOURCE
# ═════════════════════════════════════════════════════════════════════════════

class RecordSource:
    """Scoped, filtered rows of one model plus the columns reports group on.

    Args:
        model: Base model; one row per aggregated record.
        fields: Request grouping field → column expression.
        scope_column: Column compared with ``ReportScope.project_id``.
        date_column: Column the request date range applies to.
        date_fields: Grouping fields bucketed by UTC day (manual path only).
        joins: ``(target, onclause)`` pairs inner-joined onto the base model.
        outer_joins: ``(target, onclause)`` pairs left-outer-joined, for
                     relations whose foreign key may be null.
        filters: Clauses always applied (soft deletes).
    """

    def __init__(self, model, *, fields: dict, scope_column, date_column,
                 date_fields: Iterable[str] = (), joins: Iterable[tuple] = (),
                 outer_joins: Iterable[tuple] = (), filters: Iterable = ()):
        self.model = model
        self.fields = dict(fields)
        self.scope_column = scope_column
        self.date_column = date_column
        self.date_fields = frozenset(date_fields)
        self.joins = tuple(joins)
        self.outer_joins = tuple(outer_joins)
        self.filters = tuple(filters)

    @property
    def primary_key(self):
        return self.model.id

    def column(self, field: str):
        try:
            return self.fields[field]
        except KeyError:
            raise ValueError(f"{self.model.__name__} cannot be grouped by {field}") from None

    def natively_groupable(self, group_by: list[str]) -> bool:
        """True when every field maps to a plain column the store can GROUP BY."""
        return all(f in self.fields and f not in self.date_fields for f in group_by)

    def select(self, *columns, scope: ReportScope, date_filter: DateFilter | None = None):
        """Build a SELECT over the scoped, filtered records."""
        stmt = select(*columns).select_from(self.model)
        for target, onclause in self.joins:
            stmt = stmt.join(target, onclause)
        for target, onclause in self.outer_joins:
            stmt = stmt.outerjoin(target, onclause)
        if self.filters:
            stmt = stmt.where(*self.filters)
        if scope.project_id is not None:
            stmt = stmt.where(self.scope_column == scope.project_id)
        if date_filter is not None:
            lower, upper = date_filter.bounds()
            if lower is not None:
                stmt = stmt.where(self.date_column >= lower)
            if upper is not None:
                stmt = stmt.where(self.date_column < upper)
        return stmt

    def distinct_values(self, field: str, scope: ReportScope) -> list:
        """Distinct non-null values of a grouping field within ``scope``."""
        column = self.column(field)
        stmt = self.select(column, scope=scope).where(column.isnot(None)).distinct()
        return list(db.session.execute(stmt).scalars())

    def grouping_value(self, field: str, value):
        """Apply the shared grouping rules to a raw field value."""
        if value is None:
            return UNKNOWN_GROUP
        if field in self.date_fields:
            return truncate_to_day(value)
        return value

    def match(self, field: str, value) -> list:
        """Clauses selecting the records that group under ``value``.

        Null and the unknown group label select null fields; date fields
        select the whole UTC day ``value`` falls on.
        """
        column = self.column(field)
        if value is None or value == UNKNOWN_GROUP:
            return [column.is_(None)]
        if field in self.date_fields:
            day = parse_utc_date(value)
            return [column >= day_start(day), column < next_day_start(day)]
        return [column == value]


# ═════════════════════════════════════════════════════════════════════════════
# METRICS
# ═════════════════════════════════════════════════════════════════════════════

class SqlMetric(MetricConfig):
    """Metric over a RecordSource with a native and a manual path.

    Subclasses provide ``native_expression`` / ``finalize`` for the native
    path and ``value_columns`` / ``start`` / ``accumulate`` / ``finish`` for
    the manual path. ``native=False`` forces the manual path.
    """

    def __init__(self, id: str, label: str, source: RecordSource, *,
                 native: bool = True, hidden: bool = False):
        super().__init__(id, label, hidden=hidden)
        self.source = source
        self.native = native

    def can_aggregate_natively(self, group_by: list[str]) -> bool:
        return self.native and self.source.natively_groupable(group_by)

    def aggregate(self, scope, group_by, date_filter):
        if self.can_aggregate_natively(group_by):
            logger.debug("Metric %s: native aggregation by %s", self.id, group_by,
                         extra={"metric_id": self.id})
            return self.aggregate_native(scope, group_by, date_filter)
        logger.debug("Metric %s: manual aggregation by %s", self.id, group_by,
                     extra={"metric_id": self.id})
        return self.aggregate_manual(scope, group_by, date_filter)

    # ── Native path ──────────────────────────────────────────────────────

    def aggregate_native(self, scope: ReportScope, group_by: list[str],
                         date_filter: DateFilter) -> list[dict]:
        group_columns = [self.source.column(f) for f in group_by]
        stmt = self.source.select(
            *[col.label(f) for f, col in zip(group_by, group_columns)],
            self.native_expression().label(self.id),
            scope=scope, date_filter=date_filter,
        )
        if group_columns:
            stmt = stmt.group_by(*group_columns)

        partial_rows = []
        for record in db.session.execute(stmt).mappings():
            row = {f: self.source.grouping_value(f, record[f]) for f in group_by}
            row[self.id] = self.finalize(record[self.id])
            partial_rows.append(row)
        return partial_rows

    def native_expression(self):
        raise NotImplementedError(f"{type(self).__name__} has no native aggregate")

    def finalize(self, value):
        return value

    # ── Manual path ──────────────────────────────────────────────────────

    def aggregate_manual(self, scope: ReportScope, group_by: list[str],
                         date_filter: DateFilter) -> list[dict]:
        value_columns = self.value_columns()
        stmt = self.source.select(
            *[self.source.column(f).label(f) for f in group_by],
            *[col.label(name) for name, col in value_columns.items()],
            scope=scope, date_filter=date_filter,
        )

        groups: dict[tuple, tuple[dict, dict]] = {}
        for record in db.session.execute(stmt).mappings():
            values = {f: self.source.grouping_value(f, record[f]) for f in group_by}
            key = tuple(values[f] for f in group_by)
            entry = groups.get(key)
            if entry is None:
                entry = groups[key] = (values, self.start())
            self.accumulate(entry[1], record)

        return [
            {**values, self.id: self.finish(state)}
            for values, state in groups.values()
        ]

    def value_columns(self) -> dict:
        return {}

    def start(self) -> dict:
        return {}

    def accumulate(self, state: dict, record) -> None:
        raise NotImplementedError

    def finish(self, state: dict):
        raise NotImplementedError

    # ── Drill-down ───────────────────────────────────────────────────────

    @property
    def drill_key(self):
        """Column identifying the records listed for one cell."""
        return self.source.primary_key

    @property
    def drill_model(self):
        return self.source.model

    def drill_down(self, scope: ReportScope, match: dict, date_filter: DateFilter, *,
                   offset: int = 0, limit: int = 50) -> DrillDownPage:
        """List the records behind the cell whose grouping fields equal ``match``.

        ``match`` maps grouping field → raw group value as emitted by
        ``aggregate``. Records come back ordered by id; ``total`` counts
        every matching record, not just this page.
        """
        key = self.drill_key
        clauses = [clause for f, value in match.items() for clause in self.source.match(f, value)]
        keys = (
            self.source.select(key, scope=scope, date_filter=date_filter)
            .where(key.isnot(None), *clauses)
            .distinct()
        )
        total = db.session.execute(select(func.count()).select_from(keys.subquery())).scalar_one()
        page_keys = list(db.session.execute(keys.order_by(key).offset(offset).limit(limit)).scalars())

        records = []
        if page_keys:
            model = self.drill_model
            stmt = select(model).where(model.id.in_(page_keys)).order_by(model.id)
            records = [record.to_dict() for record in db.session.execute(stmt).scalars()]
        return DrillDownPage(records=records, total=total, offset=offset, limit=limit)


class CountMetric(SqlMetric):
    """Number of records per group."""

    def native_expression(self):
        return func.count(self.source.primary_key)

    def finalize(self, value):
        return int(value or 0)

    def value_columns(self):
        return {"id": self.source.primary_key}

    def start(self):
        return {"count": 0}

    def accumulate(self, state, record):
        state["count"] += 1

    def finish(self, state):
        return state["count"]


class DistinctCountMetric(SqlMetric):
    """Number of distinct non-null values of one column per group.

    ``model`` is the table the column references; drilling down lists its
    rows rather than the underlying records.
    """

    def __init__(self, id, label, source, column, *, model, **kwargs):
        super().__init__(id, label, source, **kwargs)
        self.column = column
        self.model = model

    @property
    def drill_key(self):
        return self.column

    @property
    def drill_model(self):
        return self.model

    def native_expression(self):
        return func.count(distinct(self.column))

    def finalize(self, value):
        return int(value or 0)

    def value_columns(self):
        return {"value": self.column}

    def start(self):
        return {"seen": set()}

    def accumulate(self, state, record):
        if record["value"] is not None:
            state["seen"].add(record["value"])

    def finish(self, state):
        return len(state["seen"])


class SumMetric(SqlMetric):
    """Sum of a numeric expression per group, multiplied by ``scale``.

    Nulls contribute nothing; an all-null group sums to 0.
    """

    def __init__(self, id, label, source, value, *, scale: int = 1, **kwargs):
        super().__init__(id, label, source, **kwargs)
        self.value = value
        self.scale = scale

    def native_expression(self):
        return func.sum(self.value)

    def finalize(self, value):
        return round(float(value or 0) * self.scale)

    def value_columns(self):
        return {"value": self.value}

    def start(self):
        return {"total": 0}

    def accumulate(self, state, record):
        if record["value"] is not None:
            state["total"] += record["value"]

    def finish(self, state):
        return self.finalize(state["total"])


class AverageMetric(SqlMetric):
    """Mean of a numeric expression per group, multiplied by ``scale``.

    Rounded to an integer unless ``digits`` is given. Nulls are ignored; a
    group with no values averages to 0.
    """

    def __init__(self, id, label, source, value, *, scale: int = 1,
                 digits: int | None = None, **kwargs):
        super().__init__(id, label, source, **kwargs)
        self.value = value
        self.scale = scale
        self.digits = digits

    def native_expression(self):
        return func.avg(self.value)

    def finalize(self, value):
        if value is None:
            return 0
        scaled = float(value) * self.scale
        return round(scaled) if self.digits is None else round(scaled, self.digits)

    def value_columns(self):
        return {"value": self.value}

    def start(self):
        return {"total": 0, "count": 0}

    def accumulate(self, state, record):
        if record["value"] is not None:
            state["total"] += record["value"]
            state["count"] += 1

    def finish(self, state):
        if not state["count"]:
            return 0
        return self.finalize(state["total"] / state["count"])


class FlagCountMetric(SqlMetric):
    """Number of records per group whose boolean flag equals ``expected``."""

    def __init__(self, id, label, source, flag, *, expected: bool = True, **kwargs):
        kwargs.setdefault("native", False)
        super().__init__(id, label, source, **kwargs)
        self.flag = flag
        self.expected = expected

    def value_columns(self):
        return {"flag": self.flag}

    def start(self):
        return {"count": 0}

    def accumulate(self, state, record):
        if bool(record["flag"]) == self.expected:
            state["count"] += 1

    def finish(self, state):
        return state["count"]


class RateMetric(SqlMetric):
    """Percentage of records per group whose boolean flag is set (2 decimals).

    A null flag, e.g. from a result without a status, counts as a miss.
    """

    def __init__(self, id, label, source, flag, **kwargs):
        kwargs.setdefault("native", False)
        super().__init__(id, label, source, **kwargs)
        self.flag = flag

    def value_columns(self):
        return {"flag": self.flag}

    def start(self):
        return {"hits": 0, "total": 0}

    def accumulate(self, state, record):
        state["total"] += 1
        if record["flag"]:
            state["hits"] += 1

    def finish(self, state):
        if not state["total"]:
            return 0
        return round(state["hits"] / state["total"] * 100, 2)


# ═════════════════════════════════════════════════════════════════════════════
# DIMENSIONS
# ═════════════════════════════════════════════════════════════════════════════

class EntityDimension(DimensionConfig):
    """Dimension whose values are rows of a related table.

    Enumerates the entities referenced by the source's grouping field, so
    the lookup covers exactly what metrics can emit. Entities excluded by
    ``entity_filters`` (e.g. soft-deleted users) surface as "Unknown".

    Args:
        model: Entity model; its ``to_dict()`` is the enumerated entity.
        source: RecordSource whose grouping field references ``model.id``.
        present: Callable ``entity dict → display object``; defaults to
                 ``NamedValue(id, name)``.
        none_extra: Attributes added to the None sentinel.
        load_options: Loader options for the enumeration query.
    """

    def __init__(self, id, label, group_by_field, *, model, source: RecordSource,
                 present: Callable | None = None, entity_filters: Iterable = (),
                 none_extra: dict | None = None, load_options: Iterable = ()):
        super().__init__(id, label, group_by_field)
        self.model = model
        self.source = source
        self.present = present
        self.entity_filters = tuple(entity_filters)
        self.none_extra = dict(none_extra or {})
        self.load_options = tuple(load_options)

    def enumerate(self, scope):
        # The source may join the entity table itself; keep the subquery uncorrelated.
        used = self.source.select(
            self.source.column(self.group_by_field), scope=scope,
        ).correlate(None)
        stmt = select(self.model).where(self.model.id.in_(used))
        if self.entity_filters:
            stmt = stmt.where(*self.entity_filters)
        if self.load_options:
            stmt = stmt.options(*self.load_options)
        return [entity.to_dict() for entity in db.session.execute(stmt).scalars()]

    def display(self, entity):
        if self.present is not None:
            return self.present(entity)
        return NamedValue(entity["id"], entity.get("name"))

    def none_display(self):
        return none_value(**self.none_extra)


class ValueDimension(DimensionConfig):
    """Dimension over the distinct raw values of a plain column (e.g. case source)."""

    def __init__(self, id, label, group_by_field, *, source: RecordSource):
        super().__init__(id, label, group_by_field)
        self.source = source

    def enumerate(self, scope):
        return [
            {"id": value, "name": str(value)}
            for value in self.source.distinct_values(self.group_by_field, scope)
        ]

    def display(self, entity):
        return NamedValue(entity["id"], entity["name"])


class DateDimension(DateDimensionMixin, DimensionConfig):
    """Dimension bucketing records by the UTC day of a timestamp field."""

    def __init__(self, id, label, group_by_field, *, date_key: str, source: RecordSource):
        super().__init__(id, label, group_by_field)
        self.date_key = date_key
        self.source = source

    def enumerate(self, scope):
        days = {
            truncate_to_day(value)
            for value in self.source.distinct_values(self.group_by_field, scope)
        }
        return [{self.date_key: day} for day in days if day is not None]
