"""
QA Board
Test Execution Models.

Models:
    - Status: Result status (Passed, Failed, Blocked, Untested …)
    - Configuration: Environment/browser/device combination a run targets
    - Milestone: Release or sprint a run belongs to
    - TestRun: One execution campaign inside a project
    - TestRunCase: A repository case scheduled into a run
    - TestRunResult: One recorded execution of a run case
"""

from datetime import datetime, timezone

from qaboard.models import db


class Status(db.Model):
    """Execution result status, shared across projects."""

    __tablename__ = "statuses"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    system_name = db.Column(
        db.String(50), nullable=False, unique=True,
        comment="passed | failed | blocked | retest | untested | custom keys",
    )
    color = db.Column(db.String(20), nullable=True, comment="Hex colour, e.g. #22c55e")
    is_success = db.Column(
        db.Boolean, nullable=False, default=False,
        comment="True → counts as a pass in pass-rate metrics",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "system_name": self.system_name,
            "color": self.color,
            "is_success": self.is_success,
        }

    def __repr__(self):
        return f"<Status {self.id}: {self.system_name}>"


class Configuration(db.Model):
    """Target configuration for a run (browser / OS / device)."""

    __tablename__ = "configurations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)

    def to_dict(self):
        return {"id": self.id, "name": self.name}

    def __repr__(self):
        return f"<Configuration {self.id}: {self.name}>"


class Milestone(db.Model):
    """Release / sprint milestone a run is planned against."""

    __tablename__ = "milestones"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    milestone_type = db.Column(
        db.String(30), default="release",
        comment="release | sprint | iteration",
    )
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "milestone_type": self.milestone_type,
        }

    def __repr__(self):
        return f"<Milestone {self.id}: {self.name}>"


class TestRun(db.Model):
    """An execution campaign: a set of cases run against one configuration."""

    __tablename__ = "test_runs"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    config_id = db.Column(
        db.Integer, db.ForeignKey("configurations.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    milestone_id = db.Column(
        db.Integer, db.ForeignKey("milestones.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    project = db.relationship("Project", back_populates="test_runs")
    configuration = db.relationship("Configuration")
    milestone = db.relationship("Milestone")
    cases = db.relationship(
        "TestRunCase", back_populates="test_run",
        cascade="all, delete-orphan", lazy="dynamic",
    )
    results = db.relationship(
        "TestRunResult", back_populates="test_run",
        cascade="all, delete-orphan", lazy="dynamic",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "config_id": self.config_id,
            "milestone_id": self.milestone_id,
            "is_deleted": self.is_deleted,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<TestRun {self.id}: {self.name}>"


class TestRunCase(db.Model):
    """A repository case scheduled into a test run."""

    __tablename__ = "test_run_cases"

    id = db.Column(db.Integer, primary_key=True)
    test_run_id = db.Column(
        db.Integer, db.ForeignKey("test_runs.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    repository_case_id = db.Column(
        db.Integer, db.ForeignKey("repository_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )

    test_run = db.relationship("TestRun", back_populates="cases")
    repository_case = db.relationship("RepositoryCase")

    def to_dict(self):
        case = self.repository_case
        return {
            "id": self.id,
            "test_run_id": self.test_run_id,
            "name": case.name if case else f"Case {self.id}",
            "is_deleted": bool(case.is_deleted) if case else False,
            "source": case.source if case else "MANUAL",
        }

    def __repr__(self):
        return f"<TestRunCase {self.id}: run={self.test_run_id}>"


class TestRunResult(db.Model):
    """One recorded execution of a run case.

    ``elapsed`` is stored in whole seconds; reporting metrics scale it.
    """

    __tablename__ = "test_run_results"

    id = db.Column(db.Integer, primary_key=True)
    test_run_id = db.Column(
        db.Integer, db.ForeignKey("test_runs.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    test_run_case_id = db.Column(
        db.Integer, db.ForeignKey("test_run_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    status_id = db.Column(
        db.Integer, db.ForeignKey("statuses.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    executed_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    executed_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    elapsed = db.Column(db.Integer, nullable=True, comment="Execution time in seconds")
    notes = db.Column(db.Text, default="")
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)

    test_run = db.relationship("TestRun", back_populates="results")
    test_run_case = db.relationship("TestRunCase")
    status = db.relationship("Status")
    executed_by = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "test_run_id": self.test_run_id,
            "test_run_case_id": self.test_run_case_id,
            "status_id": self.status_id,
            "executed_by_id": self.executed_by_id,
            "executed_at": self.executed_at.isoformat() if self.executed_at else None,
            "elapsed": self.elapsed,
            "notes": self.notes,
            "is_deleted": self.is_deleted,
        }

    def __repr__(self):
        return f"<TestRunResult {self.id}: case={self.test_run_case_id} status={self.status_id}>"
