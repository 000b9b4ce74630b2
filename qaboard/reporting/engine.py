"""
Report Engine.

Runs an ad-hoc report: resolves the requested dimensions and metrics,
computes every metric and enumerates every dimension concurrently, merges
the partial rows on a shared group key, then sorts and paginates.

    engine = ReportEngine(report_type.dimensions, report_type.metrics,
                          executor=pool, task_context=app.app_context)
    result = engine.run(ReportScope(project_id=1), ["status"], ["testResults"])
"""

import logging
from collections.abc import Callable, Mapping
from concurrent.futures import Executor
from functools import partial

from qaboard.core.exceptions import AggregationError
from qaboard.reporting.pagination import paginate
from qaboard.reporting.registry import DimensionRegistry, MetricRegistry
from qaboard.reporting.sorting import resolve_sort, sort_rows
from qaboard.reporting.types import (
    UNKNOWN_GROUP,
    DateFilter,
    ReportResult,
    ReportScope,
    truncate_to_day,
)

logger = logging.getLogger(__name__)


def group_component(value, is_date: bool = False) -> str:
    """Normalise one grouping value into a group key component.

    Null and the unknown group label collapse into one component; date
    values are truncated to their UTC day.
    """
    if value is None or value == UNKNOWN_GROUP:
        return UNKNOWN_GROUP
    if is_date:
        return truncate_to_day(value) or UNKNOWN_GROUP
    return str(value)


class ReportEngine:
    """Aggregates, merges, sorts and paginates one report request.

    Args:
        dimensions: Registry the request's dimension ids resolve against.
        metrics: Registry the request's metric ids resolve against.
        executor: Runs metric and dimension tasks concurrently. None runs
                  them one after another on the calling thread.
        task_context: Zero-argument callable returning a context manager
                      entered around every executor task (the Flask
                      ``app.app_context``, so each thread gets its own session).
        sort_aliases: Alternate sort column names mapped to metric ids.
    """

    def __init__(self, dimensions: DimensionRegistry, metrics: MetricRegistry, *,
                 executor: Executor | None = None,
                 task_context: Callable | None = None,
                 sort_aliases: Mapping[str, str] | None = None):
        self.dimensions = dimensions
        self.metrics = metrics
        self.executor = executor
        self.task_context = task_context
        self.sort_aliases = sort_aliases or {}

    # ── Public API ───────────────────────────────────────────────────────

    def run(self, scope: ReportScope, dimension_ids: list[str], metric_ids: list[str], *,
            date_filter: DateFilter | None = None,
            page: int = 1, page_size: int | None = None,
            sort_column: str | None = None,
            sort_direction: str | None = None) -> ReportResult:
        """Execute a report and return one page of rows plus the full grid.

        Every id and the sort column are resolved before any query runs.

        Raises:
            ValidationError: unknown dimension, metric or sort column.
            AggregationError: any metric or dimension task failed.
        """
        dimensions = self.dimensions.resolve(dimension_ids)
        metrics = self.metrics.resolve(metric_ids)
        sort_spec = resolve_sort(sort_column, sort_direction, dimensions, metrics,
                                 self.sort_aliases)

        rows = self.aggregate(scope, dimensions, metrics, date_filter or DateFilter())
        return paginate(sort_rows(rows, sort_spec), page, page_size)

    def aggregate(self, scope: ReportScope, dimensions: list, metrics: list,
                  date_filter: DateFilter) -> list[dict]:
        """Compute merged report rows, in emission order, for resolved definitions."""
        group_by = [d.group_by_field for d in dimensions]
        tasks = [
            partial(self._compute_metric, metric, scope, group_by, date_filter)
            for metric in metrics
        ] + [
            partial(self._enumerate_dimension, dimension, scope)
            for dimension in dimensions
        ]
        outcomes = self._execute(tasks)

        metric_outputs = outcomes[:len(metrics)]
        lookups = [
            self._build_lookup(dimension, entities)
            for dimension, entities in zip(dimensions, outcomes[len(metrics):])
        ]

        rows = self._merge(dimensions, metrics, metric_outputs, lookups)
        if not dimensions and not rows:
            rows = [{metric.label: 0 for metric in metrics}]

        logger.debug(
            "Report aggregated: %d rows (%d dimensions, %d metrics)",
            len(rows), len(dimensions), len(metrics),
            extra={"row_count": len(rows), "project_id": scope.project_id},
        )
        return rows

    # ── Fan-out ──────────────────────────────────────────────────────────

    def _execute(self, tasks: list[Callable]) -> list:
        if self.executor is None:
            return [task() for task in tasks]

        futures = [self.executor.submit(self._in_context, task) for task in tasks]
        try:
            return [future.result() for future in futures]
        except BaseException:
            for future in futures:
                future.cancel()
            raise

    def _in_context(self, task: Callable):
        if self.task_context is None:
            return task()
        with self.task_context():
            return task()

    def _compute_metric(self, metric, scope, group_by, date_filter) -> list[dict]:
        try:
            return metric.aggregate(scope, group_by, date_filter)
        except Exception as exc:
            logger.exception("Metric %s failed", metric.id, extra={"metric_id": metric.id})
            raise AggregationError(f"Metric {metric.id} failed: {exc}", source=metric.id) from exc

    def _enumerate_dimension(self, dimension, scope) -> list[dict]:
        try:
            return dimension.enumerate(scope)
        except Exception as exc:
            logger.exception("Dimension %s enumeration failed", dimension.id,
                             extra={"dimension_id": dimension.id})
            raise AggregationError(
                f"Dimension {dimension.id} failed: {exc}", source=dimension.id,
            ) from exc

    # ── Merge ────────────────────────────────────────────────────────────

    @staticmethod
    def _build_lookup(dimension, entities: list[dict]) -> dict[str, dict]:
        lookup = {}
        for entity in entities:
            key = dimension.lookup_key(entity)
            if key is not None:
                lookup[key] = entity
        return lookup

    def _merge(self, dimensions, metrics, metric_outputs, lookups) -> list[dict]:
        rows: dict[tuple, dict] = {}
        for metric, partial_rows in zip(metrics, metric_outputs):
            for partial_row in partial_rows:
                raw_values = [partial_row.get(d.group_by_field) for d in dimensions]
                key = tuple(
                    group_component(raw, d.is_date)
                    for d, raw in zip(dimensions, raw_values)
                )
                row = rows.get(key)
                if row is None:
                    row = {}
                    for dimension, raw, component, lookup in zip(dimensions, raw_values, key, lookups):
                        row[dimension.id] = self._hydrate(dimension, raw, component, lookup)
                    for m in metrics:
                        row[m.label] = 0
                    rows[key] = row
                value = partial_row.get(metric.id)
                row[metric.label] = 0 if value is None else value
        return list(rows.values())

    @staticmethod
    def _hydrate(dimension, raw, component: str, lookup: dict[str, dict]):
        if component == UNKNOWN_GROUP:
            return dimension.none_display()
        entity = lookup.get(component)
        if entity is None:
            return dimension.orphan_display(raw, component)
        return dimension.display(entity)
