"""
Test execution report catalog.

Aggregates over recorded test results. Soft-deleted results and results
of soft-deleted runs are excluded everywhere: metrics, dimension
enumerations, date buckets and drill-downs all see the same records.
Results without a status are kept and group under "None".
"""

from sqlalchemy.orm import selectinload

from qaboard.models.project import Project, User
from qaboard.models.testing import Configuration, Milestone, Status, TestRun, TestRunCase, TestRunResult
from qaboard.reporting.registry import DimensionRegistry, MetricRegistry, ReportType
from qaboard.reporting.sql import (
    AverageMetric,
    CountMetric,
    DateDimension,
    DistinctCountMetric,
    EntityDimension,
    RateMetric,
    RecordSource,
    SumMetric,
)
from qaboard.reporting.types import DEFAULT_NONE_COLOR, NamedValue

# Sort column names accepted in addition to metric ids
SORT_ALIASES = {
    "testResultCount": "testResults",
    "avgElapsed": "avgElapsedTime",
    "sumElapsed": "totalElapsedTime",
}


def results_source() -> RecordSource:
    """Live test results of live runs; the status may be null."""
    return RecordSource(
        TestRunResult,
        fields={
            "projectId": TestRun.project_id,
            "statusId": TestRunResult.status_id,
            "executedById": TestRunResult.executed_by_id,
            "configId": TestRun.config_id,
            "executedAt": TestRunResult.executed_at,
            "testRunId": TestRunResult.test_run_id,
            "testRunCaseId": TestRunResult.test_run_case_id,
            "milestoneId": TestRun.milestone_id,
        },
        date_fields=("executedAt",),
        scope_column=TestRun.project_id,
        date_column=TestRunResult.executed_at,
        joins=(
            (TestRun, TestRunResult.test_run_id == TestRun.id),
        ),
        outer_joins=(
            (Status, TestRunResult.status_id == Status.id),
        ),
        filters=(
            TestRunResult.is_deleted.is_(False),
            TestRun.is_deleted.is_(False),
        ),
    )


def _status_value(entity):
    return NamedValue(entity["id"], entity["name"],
                      {"color": entity.get("color") or DEFAULT_NONE_COLOR})


def _user_value(entity):
    return NamedValue(entity["id"], entity["name"], {"email": entity.get("email")})


def _case_value(entity):
    return NamedValue(entity["id"], entity["name"], {
        "isDeleted": entity.get("is_deleted", False),
        "source": entity.get("source") or "MANUAL",
    })


def _milestone_value(entity):
    return NamedValue(entity["id"], entity["name"],
                      {"milestoneType": entity.get("milestone_type")})


def build(cross_project: bool = False) -> ReportType:
    """Build the project-scoped or cross-project test execution report type."""
    source = results_source()

    dimensions = [
        EntityDimension("status", "Status", "statusId", model=Status, source=source,
                        present=_status_value, none_extra={"color": DEFAULT_NONE_COLOR}),
        EntityDimension("user", "Executor", "executedById", model=User, source=source,
                        present=_user_value, entity_filters=(User.is_deleted.is_(False),)),
        EntityDimension("configuration", "Configuration", "configId",
                        model=Configuration, source=source),
        DateDimension("date", "Execution Date", "executedAt",
                      date_key="executedAt", source=source),
        EntityDimension("testRun", "Test Run", "testRunId", model=TestRun, source=source,
                        entity_filters=(TestRun.is_deleted.is_(False),)),
        EntityDimension("testCase", "Test Case", "testRunCaseId", model=TestRunCase,
                        source=source, present=_case_value,
                        load_options=(selectinload(TestRunCase.repository_case),)),
        EntityDimension("milestone", "Milestone", "milestoneId", model=Milestone,
                        source=source, present=_milestone_value,
                        entity_filters=(Milestone.is_deleted.is_(False),)),
    ]
    if cross_project:
        dimensions.insert(0, EntityDimension(
            "project", "Project", "projectId", model=Project, source=source,
            entity_filters=(Project.is_deleted.is_(False),),
        ))

    metrics = [
        CountMetric("testResults", "Test Results Count", source),
        RateMetric("passRate", "Pass Rate (%)", source, Status.is_success),
        # elapsed is stored in seconds; both duration metrics report milliseconds
        AverageMetric("avgElapsedTime", "Avg. Elapsed Time", source,
                      TestRunResult.elapsed, scale=1000),
        SumMetric("totalElapsedTime", "Total Elapsed Time", source,
                  TestRunResult.elapsed, scale=1000),
        DistinctCountMetric("testRunCount", "Test Runs Count", source,
                            TestRunResult.test_run_id, model=TestRun),
        DistinctCountMetric("testCaseCount", "Test Cases Count", source,
                            TestRunResult.test_run_case_id, model=TestRunCase),
    ]

    if cross_project:
        key, label = "cross-project-test-execution", "Cross-Project Test Execution"
    else:
        key, label = "test-execution", "Test Execution"
    return ReportType(
        key=key,
        label=label,
        dimensions=DimensionRegistry(dimensions),
        metrics=MetricRegistry(metrics),
        requires_project=not cross_project,
        sort_aliases=SORT_ALIASES,
    )
