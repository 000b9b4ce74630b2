"""
QA Board
Test Repository Models.

Models:
    - WorkflowState: Lifecycle state of a repository case (Draft, Ready …)
    - RepositoryFolder: Folder tree node holding cases
    - CaseTemplate: Field template a case was authored with
    - RepositoryCase: A test case in the project repository
    - RepositoryCaseStep: Ordered step of a repository case
"""

from datetime import datetime, timezone

from qaboard.models import db


class WorkflowState(db.Model):
    """Case lifecycle state, configurable per project."""

    __tablename__ = "workflow_states"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True, index=True,
        comment="NULL → global default state",
    )
    name = db.Column(db.String(100), nullable=False)
    icon = db.Column(db.String(50), nullable=True)
    color = db.Column(db.String(20), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "color": self.color,
        }

    def __repr__(self):
        return f"<WorkflowState {self.id}: {self.name}>"


class RepositoryFolder(db.Model):
    """Folder node in a project's test repository."""

    __tablename__ = "repository_folders"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    parent_id = db.Column(
        db.Integer, db.ForeignKey("repository_folders.id", ondelete="CASCADE"),
        nullable=True,
    )
    name = db.Column(db.String(200), nullable=False)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "parent_id": self.parent_id,
            "name": self.name,
        }

    def __repr__(self):
        return f"<RepositoryFolder {self.id}: {self.name}>"


class CaseTemplate(db.Model):
    """Field layout template used to author a case."""

    __tablename__ = "case_templates"

    id = db.Column(db.Integer, primary_key=True)
    template_name = db.Column(db.String(200), nullable=False)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.template_name,
            "is_default": self.is_default,
        }

    def __repr__(self):
        return f"<CaseTemplate {self.id}: {self.template_name}>"


class RepositoryCase(db.Model):
    """A test case stored in a project repository."""

    __tablename__ = "repository_cases"

    SOURCES = ("MANUAL", "API", "JUNIT", "IMPORT")

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    folder_id = db.Column(
        db.Integer, db.ForeignKey("repository_folders.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    template_id = db.Column(
        db.Integer, db.ForeignKey("case_templates.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    state_id = db.Column(
        db.Integer, db.ForeignKey("workflow_states.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    creator_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    name = db.Column(db.String(300), nullable=False)
    source = db.Column(
        db.String(20), nullable=False, default="MANUAL",
        comment="MANUAL | API | JUNIT | IMPORT",
    )
    automated = db.Column(db.Boolean, nullable=False, default=False)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    project = db.relationship("Project", back_populates="repository_cases")
    folder = db.relationship("RepositoryFolder")
    template = db.relationship("CaseTemplate")
    state = db.relationship("WorkflowState")
    creator = db.relationship("User")
    steps = db.relationship(
        "RepositoryCaseStep", back_populates="case",
        cascade="all, delete-orphan", order_by="RepositoryCaseStep.step_no",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "folder_id": self.folder_id,
            "template_id": self.template_id,
            "state_id": self.state_id,
            "creator_id": self.creator_id,
            "name": self.name,
            "source": self.source,
            "automated": self.automated,
            "is_deleted": self.is_deleted,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<RepositoryCase {self.id}: {self.name}>"


class RepositoryCaseStep(db.Model):
    """Ordered step of a repository case."""

    __tablename__ = "repository_case_steps"

    id = db.Column(db.Integer, primary_key=True)
    case_id = db.Column(
        db.Integer, db.ForeignKey("repository_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    step_no = db.Column(db.Integer, nullable=False)
    action = db.Column(db.Text, nullable=False)
    expected_result = db.Column(db.Text, default="")
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    case = db.relationship("RepositoryCase", back_populates="steps")

    def to_dict(self):
        return {
            "id": self.id,
            "case_id": self.case_id,
            "step_no": self.step_no,
            "action": self.action,
            "expected_result": self.expected_result,
        }

    def __repr__(self):
        return f"<RepositoryCaseStep {self.id}: case={self.case_id} #{self.step_no}>"
