"""
Repository statistics report catalog.

Aggregates over the live (not soft-deleted) cases of a project repository.
Step counts are relation-based, so the step metrics always take the manual
path.
"""

from sqlalchemy import func, select

from qaboard.models.project import Project, User
from qaboard.models.repository import (
    CaseTemplate,
    RepositoryCase,
    RepositoryCaseStep,
    RepositoryFolder,
    WorkflowState,
)
from qaboard.reporting.registry import DimensionRegistry, MetricRegistry, ReportType
from qaboard.reporting.sql import (
    AverageMetric,
    CountMetric,
    DateDimension,
    EntityDimension,
    FlagCountMetric,
    RateMetric,
    RecordSource,
    SumMetric,
    ValueDimension,
)
from qaboard.reporting.types import NamedValue


def cases_source() -> RecordSource:
    return RecordSource(
        RepositoryCase,
        fields={
            "projectId": RepositoryCase.project_id,
            "templateId": RepositoryCase.template_id,
            "creatorId": RepositoryCase.creator_id,
            "stateId": RepositoryCase.state_id,
            "source": RepositoryCase.source,
            "folderId": RepositoryCase.folder_id,
            "createdAt": RepositoryCase.created_at,
        },
        date_fields=("createdAt",),
        scope_column=RepositoryCase.project_id,
        date_column=RepositoryCase.created_at,
        filters=(RepositoryCase.is_deleted.is_(False),),
    )


def step_count():
    """Live steps per case, correlated to the outer case row."""
    return (
        select(func.count(RepositoryCaseStep.id))
        .where(
            RepositoryCaseStep.case_id == RepositoryCase.id,
            RepositoryCaseStep.is_deleted.is_(False),
        )
        .correlate(RepositoryCase)
        .scalar_subquery()
    )


def _state_value(entity):
    return NamedValue(entity["id"], entity["name"],
                      {"icon": entity.get("icon"), "color": entity.get("color")})


def build(cross_project: bool = False) -> ReportType:
    """Build the project-scoped or cross-project repository statistics report type."""
    source = cases_source()
    steps = step_count()

    dimensions = [
        EntityDimension("template", "Template", "templateId",
                        model=CaseTemplate, source=source),
        EntityDimension("creator", "Creator", "creatorId", model=User, source=source),
        EntityDimension("state", "State", "stateId", model=WorkflowState,
                        source=source, present=_state_value),
        ValueDimension("source", "Source", "source", source=source),
        EntityDimension("folder", "Folder", "folderId", model=RepositoryFolder,
                        source=source, entity_filters=(RepositoryFolder.is_deleted.is_(False),)),
        DateDimension("date", "Creation Date", "createdAt",
                      date_key="createdAt", source=source),
    ]
    if cross_project:
        dimensions.insert(0, EntityDimension(
            "project", "Project", "projectId", model=Project, source=source,
            entity_filters=(Project.is_deleted.is_(False),),
        ))

    metrics = [
        CountMetric("testCaseCount", "Test Case Count", source),
        FlagCountMetric("automatedCount", "Automated Cases", source,
                        RepositoryCase.automated, expected=True),
        FlagCountMetric("manualCount", "Manual Cases", source,
                        RepositoryCase.automated, expected=False),
        RateMetric("automationRate", "Automation Rate (%)", source,
                   RepositoryCase.automated),
        AverageMetric("averageSteps", "Average Steps per Case", source,
                      steps, digits=2, native=False),
        SumMetric("totalSteps", "Total Steps", source, steps, native=False),
    ]

    if cross_project:
        key, label = "cross-project-repository-stats", "Cross-Project Repository Statistics"
    else:
        key, label = "repository-stats", "Repository Statistics"
    return ReportType(
        key=key,
        label=label,
        dimensions=DimensionRegistry(dimensions),
        metrics=MetricRegistry(metrics),
        requires_project=not cross_project,
    )
