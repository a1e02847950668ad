#app/models/activity.py
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, DateTime, Text, JSON, ForeignKey, Index, func
)
from app.models.base import Base

class ProjectActivity(Base):
    """
    ProjectActivity — запись журнала аудита. Только добавляется, не меняется.
    """
    __tablename__ = "project_activities"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    project_id: int = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    milestone_id: int = Column(Integer, ForeignKey("milestones.id", ondelete="SET NULL"), nullable=True, index=True)
    activity_type: str = Column(String(48), nullable=False, doc="milestone_started, milestone_submitted, file_uploaded, ...")
    description: str = Column(Text, nullable=False)
    performed_by: int = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    # "metadata" зарезервировано в declarative API
    activity_metadata: dict = Column("metadata", JSON, nullable=False, default=lambda: {})
    created_at: datetime = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_project_activities_project_id_created_at", "project_id", "created_at"),
    )

    def __repr__(self):
        return (
            f"<ProjectActivity(id={self.id}, type={self.activity_type}, "
            f"project_id={self.project_id}, milestone_id={self.milestone_id})>"
        )
