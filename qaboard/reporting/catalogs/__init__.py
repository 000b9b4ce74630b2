"""
Report type catalogs.

Each catalog module exposes ``build(cross_project)`` returning a ReportType.
``build_report_types`` runs once in ``create_app``; the result is stored
read-only in ``app.extensions["report_types"]``.
"""

from types import MappingProxyType

from qaboard.reporting.catalogs import repository_stats, test_execution

CATALOG_BUILDERS = (test_execution.build, repository_stats.build)


def build_report_types() -> MappingProxyType:
    """Build every report type, project-scoped and cross-project, keyed by report key."""
    report_types = {}
    for builder in CATALOG_BUILDERS:
        for cross_project in (False, True):
            report_type = builder(cross_project=cross_project)
            report_types[report_type.key] = report_type
    return MappingProxyType(report_types)
