"""
Report builder service layer.

Runs ad-hoc reports through the ReportEngine, lists the records behind a
report cell, renders CSV exports and owns the persistence of saved report
definitions. Blueprints stay HTTP-only;
every db.session.commit() for ReportDefinition lives in this module.
"""

import csv
import io
import logging
import time
from contextlib import contextmanager
from concurrent.futures import ThreadPoolExecutor

from flask import current_app, g

from qaboard.core.exceptions import AggregationError, NotFoundError, ValidationError
from qaboard.models import db
from qaboard.models.project import Project
from qaboard.models.reporting import ReportDefinition
from qaboard.reporting.engine import ReportEngine
from qaboard.reporting.registry import ReportType
from qaboard.reporting.request import ReportRequest, parse_drill_down_request, parse_report_request
from qaboard.reporting.types import DrillDownPage, ReportResult
from qaboard.utils.errors import E

logger = logging.getLogger(__name__)

CHART_TYPES = ("table", "bar", "line", "pie", "donut")


# ──────────────────────────────────────────────────────────────────────────────
# Report types
# ──────────────────────────────────────────────────────────────────────────────

def get_report_type(key: str) -> ReportType:
    """Return the registered report type for ``key``.

    Raises:
        NotFoundError: no such report type.
    """
    report_type = current_app.extensions["report_types"].get(key)
    if report_type is None:
        raise NotFoundError(resource="Report type", resource_id=key)
    return report_type


def list_report_types() -> list[dict]:
    return [rt.to_dict() for rt in current_app.extensions["report_types"].values()]


def get_report_metadata(key: str, project_id: int | None) -> dict:
    """Dimensions and metrics a report type offers (hidden metrics omitted)."""
    report_type = get_report_type(key)
    if report_type.requires_project and not project_id:
        raise ValidationError("Project ID is required",
                              details={"projectId": None}, code=E.VALIDATION_REQUIRED)
    return report_type.metadata()


# ──────────────────────────────────────────────────────────────────────────────
# Report execution
# ──────────────────────────────────────────────────────────────────────────────

def run_report(key: str, payload: dict) -> ReportResult:
    """Validate ``payload`` and run it as a ``key`` report.

    Raises:
        NotFoundError: unknown report type.
        ValidationError: invalid request; nothing was queried.
        AggregationError: a metric or dimension query failed.
    """
    report_type = get_report_type(key)
    request = parse_report_request(payload, report_type)
    return execute_report(report_type, request)


def execute_report(report_type: ReportType, request: ReportRequest) -> ReportResult:
    """Run a validated request, fanning queries out to worker threads when configured.

    Each worker task runs inside its own application context and therefore
    its own SQLAlchemy session. ``REPORT_MAX_WORKERS`` of 1 or less keeps
    every query on the request thread.
    """
    task_count = len(request.dimensions) + len(request.metrics)
    workers = min(current_app.config.get("REPORT_MAX_WORKERS", 1), task_count)
    started = time.perf_counter()

    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="report") as pool:
            engine = ReportEngine(
                report_type.dimensions, report_type.metrics,
                executor=pool, task_context=_worker_context(),
                sort_aliases=report_type.sort_aliases,
            )
            result = _run(engine, request)
    else:
        engine = ReportEngine(report_type.dimensions, report_type.metrics,
                              sort_aliases=report_type.sort_aliases)
        result = _run(engine, request)

    logger.info(
        "Report %s: %d rows in %.0fms", report_type.key, result.total_count,
        (time.perf_counter() - started) * 1000,
        extra={
            "report_type": report_type.key,
            "project_id": request.project_id,
            "row_count": result.total_count,
        },
    )
    return result


def _worker_context():
    """Context factory for worker tasks: a fresh app context carrying the request id."""
    app = current_app._get_current_object()
    request_id = g.get("request_id")

    @contextmanager
    def context():
        with app.app_context():
            g.request_id = request_id
            yield

    return context


def _run(engine: ReportEngine, request: ReportRequest) -> ReportResult:
    return engine.run(
        request.scope,
        request.dimensions,
        request.metrics,
        date_filter=request.date_filter,
        page=request.page,
        page_size=request.page_size,
        sort_column=request.sort_column,
        sort_direction=request.sort_direction,
    )


def drill_down(key: str, payload: dict) -> DrillDownPage:
    """List the records counted in one cell of a ``key`` report.

    For count metrics the page ``total`` equals the cell value.

    Raises:
        NotFoundError: unknown report type.
        ValidationError: invalid request; nothing was queried.
        AggregationError: the drill-down query failed.
    """
    report_type = get_report_type(key)
    request = parse_drill_down_request(payload, report_type)
    metric = report_type.metrics[request.metric]
    try:
        page = metric.drill_down(request.scope, request.match, request.date_filter,
                                 offset=request.offset, limit=request.limit)
    except Exception as exc:
        logger.exception("Drill-down of %s failed", metric.id, extra={"metric_id": metric.id})
        raise AggregationError(f"Drill-down of {metric.id} failed: {exc}",
                               source=metric.id) from exc

    logger.info(
        "Drill-down %s/%s: %d of %d records", report_type.key, metric.id,
        len(page.records), page.total,
        extra={
            "report_type": report_type.key,
            "project_id": request.project_id,
            "metric_id": metric.id,
            "row_count": page.total,
        },
    )
    return page


def export_report_csv(key: str, payload: dict) -> tuple[str, str]:
    """Run a report and render every sorted row as CSV, ignoring pagination.

    Returns:
        ``(csv_text, filename)``.
    """
    report_type = get_report_type(key)
    request = parse_report_request({**payload, "page": 1, "pageSize": "All"}, report_type)
    result = execute_report(report_type, request)

    dimensions = report_type.dimensions.resolve(request.dimensions)
    metrics = report_type.metrics.resolve(request.metrics)

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([d.label for d in dimensions] + [m.label for m in metrics])
    for row in result.all_results:
        writer.writerow(
            [row[d.id].label() for d in dimensions]
            + [row[m.label] for m in metrics]
        )

    filename = f"{report_type.key}"
    if request.project_id:
        filename += f"-project-{request.project_id}"
    return output.getvalue(), f"{filename}.csv"


# ──────────────────────────────────────────────────────────────────────────────
# Saved report definitions
# ──────────────────────────────────────────────────────────────────────────────

def _get_definition_or_404(definition_id: int) -> ReportDefinition:
    definition = db.session.get(ReportDefinition, definition_id)
    if not definition:
        raise NotFoundError(resource="ReportDefinition", resource_id=definition_id)
    return definition


def _validated_request(report_type: ReportType, project_id: int | None, config) -> ReportRequest:
    """Validate a stored query configuration exactly as a run request would be."""
    if not isinstance(config, dict):
        raise ValidationError("query_config must be an object",
                              details={"query_config": config}, code=E.VALIDATION_INVALID)
    return parse_report_request({**config, "projectId": project_id}, report_type)


def _check_project(project_id: int | None) -> None:
    if project_id is not None and not db.session.get(Project, project_id):
        raise NotFoundError(resource="Project", resource_id=project_id)


def _chart_type(value) -> str:
    chart_type = value or "table"
    if chart_type not in CHART_TYPES:
        raise ValidationError(f"Unsupported chart type: {chart_type}",
                              details={"chart_type": chart_type}, code=E.VALIDATION_INVALID)
    return chart_type


def list_definitions(project_id: int | None = None, report_type: str | None = None) -> list[dict]:
    """Saved definitions, newest first, optionally filtered."""
    q = ReportDefinition.query
    if project_id is not None:
        q = q.filter_by(project_id=project_id)
    if report_type:
        q = q.filter_by(report_type=report_type)
    return [d.to_dict() for d in q.order_by(ReportDefinition.id.desc()).all()]


def get_definition(definition_id: int) -> dict:
    return _get_definition_or_404(definition_id).to_dict()


def create_definition(data: dict) -> dict:
    """Persist a new saved report after validating its query configuration.

    Raises:
        ValidationError: missing name, unknown chart type or invalid query.
        NotFoundError: unknown project.
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": None},
                              code=E.VALIDATION_REQUIRED)

    report_key = data.get("report_type") or ""
    if report_key not in current_app.extensions["report_types"]:
        raise ValidationError(f"Unsupported report type: {report_key}",
                              details={"report_type": report_key}, code=E.VALIDATION_INVALID)
    report_type = get_report_type(report_key)
    project_id = data.get("project_id") if report_type.requires_project else None
    request = _validated_request(report_type, project_id, data.get("query_config") or {})
    project_id = request.project_id
    _check_project(project_id)

    definition = ReportDefinition(
        project_id=project_id,
        name=name,
        description=data.get("description", ""),
        report_type=report_type.key,
        query_config=request.to_config(),
        chart_type=_chart_type(data.get("chart_type")),
        created_by=data.get("created_by", ""),
    )
    db.session.add(definition)
    db.session.commit()
    logger.info("Report definition %s created", definition.id,
                extra={"report_type": report_type.key, "project_id": project_id})
    return definition.to_dict()


def update_definition(definition_id: int, data: dict) -> dict:
    """Update name, description, chart type or query configuration of a saved report.

    Every field is validated before any is applied.
    """
    definition = _get_definition_or_404(definition_id)
    changes = {}

    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required", details={"name": None},
                                  code=E.VALIDATION_REQUIRED)
        changes["name"] = name
    if "description" in data:
        changes["description"] = data["description"] or ""
    if "chart_type" in data:
        changes["chart_type"] = _chart_type(data["chart_type"])
    if "query_config" in data:
        report_type = get_report_type(definition.report_type)
        request = _validated_request(report_type, definition.project_id, data["query_config"])
        changes["query_config"] = request.to_config()

    for attr, value in changes.items():
        setattr(definition, attr, value)
    db.session.commit()
    return definition.to_dict()


def delete_definition(definition_id: int) -> None:
    definition = _get_definition_or_404(definition_id)
    db.session.delete(definition)
    db.session.commit()
    logger.info("Report definition %s deleted", definition_id)


def run_definition(definition_id: int, page: int | None = None, page_size=None) -> ReportResult:
    """Run a saved report; ``page`` / ``page_size`` override the stored paging."""
    definition = _get_definition_or_404(definition_id)
    payload = {**(definition.query_config or {}), "projectId": definition.project_id}
    if page is not None:
        payload["page"] = page
    if page_size is not None:
        payload["pageSize"] = page_size
    return run_report(definition.report_type, payload)
