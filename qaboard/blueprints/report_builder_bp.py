"""Report builder blueprint.

REST API for ad-hoc reports and saved report definitions.

Endpoint groups:
  Report types          GET  /api/v1/report-builder/types
  Report metadata       GET  /api/v1/report-builder/<report_type>?projectId=
  Run report            POST /api/v1/report-builder/<report_type>
  CSV export            POST /api/v1/report-builder/<report_type>/export
  Drill-down            POST /api/v1/report-builder/<report_type>/drill-down
  Saved definitions     GET/POST        /api/v1/report-builder/definitions
                        GET/PUT/DELETE  /api/v1/report-builder/definitions/<id>
                        GET             /api/v1/report-builder/definitions/<id>/run

Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

import qaboard.services.report_service as rs
from qaboard.core.exceptions import AggregationError, NotFoundError, ValidationError
from qaboard.utils.errors import E, api_error, truncate_message

logger = logging.getLogger(__name__)

report_builder_bp = Blueprint("report_builder", __name__, url_prefix="/api/v1/report-builder")


# ── Error handlers ────────────────────────────────────────────────────────────


@report_builder_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@report_builder_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(error.code or E.VALIDATION_INVALID, str(error),
                     status=400, details=error.details)


@report_builder_bp.errorhandler(AggregationError)
def _handle_aggregation(error: AggregationError):
    logger.error("Report aggregation failed (source=%s): %s", error.source, error,
                 exc_info=error)
    max_length = current_app.config.get("REPORT_ERROR_MAX_LENGTH", 300)
    return api_error(E.DATABASE, truncate_message(str(error), max_length))


@report_builder_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return error
    logger.exception("Unexpected error in report_builder_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", code=E.VALIDATION_INVALID)
    return data


# ═════════════════════════════════════════════════════════════════════════
# Report types & metadata
# ═════════════════════════════════════════════════════════════════════════


@report_builder_bp.route("/types", methods=["GET"])
def list_types():
    """Available report types.

    Returns: {"report_types": [{key, label, requiresProject}]}
    """
    return jsonify({"report_types": rs.list_report_types()}), 200


@report_builder_bp.route("/<report_type>", methods=["GET"])
def get_metadata(report_type):
    """Dimensions and metrics offered by a report type.

    Query params: projectId (required for project-scoped types)
    Returns: {"dimensions": [{id, label}], "metrics": [{id, label}]}
    """
    project_id = request.args.get("projectId", type=int)
    return jsonify(rs.get_report_metadata(report_type, project_id)), 200


# ═════════════════════════════════════════════════════════════════════════
# Report execution
# ═════════════════════════════════════════════════════════════════════════


@report_builder_bp.route("/<report_type>", methods=["POST"])
def run_report(report_type):
    """Run an ad-hoc report.

    Body: {
        projectId, dimensions: [id], metrics: [id], startDate?, endDate?,
        page?, pageSize? (int | "All"), sortColumn?, sortDirection? (asc | desc)
    }
    Returns: {results, allResults, totalCount, page, pageSize}
    """
    result = rs.run_report(report_type, _json_body())
    return jsonify(result.to_dict()), 200


@report_builder_bp.route("/<report_type>/export", methods=["POST"])
def export_report(report_type):
    """Run a report and download every sorted row as CSV.

    Body: same as run; paging fields are ignored.
    """
    content, filename = rs.export_report_csv(report_type, _json_body())
    return Response(
        content,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@report_builder_bp.route("/<report_type>/drill-down", methods=["POST"])
def drill_down(report_type):
    """Records behind one report cell, paginated.

    Body: {
        projectId, metric, dimensions: {dimensionId: cell}, startDate?, endDate?,
        offset? (default 0), limit? (default 50, max 1000)
    }
    Returns: {data: [record], total, offset, limit, hasMore}
    """
    page = rs.drill_down(report_type, _json_body())
    return jsonify(page.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════
# Saved definitions
# ═════════════════════════════════════════════════════════════════════════


@report_builder_bp.route("/definitions", methods=["GET"])
def list_definitions():
    """Saved report definitions.

    Query params: project_id?, report_type?
    """
    items = rs.list_definitions(
        project_id=request.args.get("project_id", type=int),
        report_type=request.args.get("report_type"),
    )
    return jsonify({"items": items, "total": len(items)}), 200


@report_builder_bp.route("/definitions", methods=["POST"])
def create_definition():
    """Save a report definition.

    Body: {name, report_type, project_id?, description?, chart_type?, query_config}
    Returns: created definition (201).
    """
    return jsonify(rs.create_definition(_json_body())), 201


@report_builder_bp.route("/definitions/<int:definition_id>", methods=["GET"])
def get_definition(definition_id):
    return jsonify(rs.get_definition(definition_id)), 200


@report_builder_bp.route("/definitions/<int:definition_id>", methods=["PUT"])
def update_definition(definition_id):
    """Update a saved definition; only supplied fields change."""
    return jsonify(rs.update_definition(definition_id, _json_body())), 200


@report_builder_bp.route("/definitions/<int:definition_id>", methods=["DELETE"])
def delete_definition(definition_id):
    rs.delete_definition(definition_id)
    return jsonify({"deleted": True}), 200


@report_builder_bp.route("/definitions/<int:definition_id>/run", methods=["GET"])
def run_definition(definition_id):
    """Run a saved definition.

    Query params: page?, pageSize? (override the stored paging)
    """
    result = rs.run_definition(
        definition_id,
        page=request.args.get("page"),
        page_size=request.args.get("pageSize"),
    )
    return jsonify(result.to_dict()), 200
