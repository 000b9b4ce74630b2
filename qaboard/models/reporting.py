"""
QA Board
Reporting Models.

Models:
    - ReportDefinition: Saved report-builder configuration
"""

from datetime import datetime, timezone

from qaboard.models import db


class ReportDefinition(db.Model):
    """Saved report-builder configuration, re-runnable on demand."""

    __tablename__ = "report_definitions"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True, index=True,
        comment="NULL → cross-project report",
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    report_type = db.Column(
        db.String(50), nullable=False, index=True,
        comment="test-execution | repository-stats | cross-project-* variants",
    )
    query_config = db.Column(
        db.JSON, nullable=True,
        comment="dimensions, metrics, startDate, endDate, sortColumn, sortDirection, pageSize",
    )
    chart_type = db.Column(
        db.String(30), default="table",
        comment="table | bar | line | pie | donut",
    )
    created_by = db.Column(db.String(100), default="")
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "report_type": self.report_type,
            "query_config": self.query_config or {},
            "chart_type": self.chart_type,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ReportDefinition {self.id}: {self.name}>"
