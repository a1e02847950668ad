#app/models/milestone.py
from datetime import datetime, timedelta
from sqlalchemy import (
    Column, Integer, String, DateTime, Text, Numeric, ForeignKey, Index, func, text
)
from sqlalchemy.orm import relationship
from app.models.base import Base
from app.core.statuses import MilestoneStatus
from app.core import revisions

class Milestone(Base):
    """
    Milestone — оплачиваемый этап проекта со своим циклом сдачи, приёмки и ревизий.
    """
    __tablename__ = "milestones"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    project_id: int = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True, doc="ID проекта")
    title: str = Column(String(160), nullable=False, doc="Название этапа")
    description: str = Column(Text, nullable=True, default="", doc="Описание")
    status: str = Column(String(24), nullable=False, default=MilestoneStatus.NOT_STARTED.value, doc="Статус: not_started, in_progress, submitted, approved, rejected")
    position: int = Column(Integer, nullable=False, default=1, doc="Порядковый номер в проекте")
    milestone_price: float = Column(Numeric(12, 2, asdecimal=False), nullable=False, default=0, doc="Стоимость этапа")
    duration_days: int = Column(Integer, nullable=False, default=1, doc="Длительность, дней")
    free_revisions: int = Column(Integer, nullable=False, default=0, doc="Бесплатные ревизии")
    used_revisions: int = Column(Integer, nullable=False, default=0, doc="Использованные ревизии")
    revision_rate: float = Column(Numeric(12, 2, asdecimal=False), nullable=False, default=0, doc="Стоимость ревизии сверх квоты")
    starting_notes: str = Column(Text, nullable=True, doc="Заметки при старте")
    submission_notes: str = Column(Text, nullable=True, doc="Заметки при сдаче")
    revision_notes: str = Column(Text, nullable=True, doc="Замечания последнего отклонения")
    started_at: datetime = Column(DateTime(timezone=True), nullable=True)
    submitted_at: datetime = Column(DateTime(timezone=True), nullable=True)
    approved_at: datetime = Column(DateTime(timezone=True), nullable=True)
    rejected_at: datetime = Column(DateTime(timezone=True), nullable=True)
    created_at: datetime = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: datetime = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    project = relationship("Project", back_populates="milestones")
    attachment = relationship("MediaAttachment", back_populates="milestone", uselist=False)

    __table_args__ = (
        Index("ix_milestones_project_id_status", "project_id", "status"),
        # Не больше одного этапа в работе на проект
        Index(
            "uq_milestones_project_in_progress",
            "project_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
    )

    @property
    def due_date(self):
        if self.created_at is None or self.duration_days is None:
            return None
        return self.created_at + timedelta(days=self.duration_days)

    @property
    def has_free_revisions_left(self) -> bool:
        return revisions.has_free_revisions_left(self.used_revisions, self.free_revisions)

    @property
    def next_rejection_charge(self) -> float:
        return revisions.rejection_charge(self.used_revisions, self.free_revisions, self.revision_rate)

    @property
    def files(self) -> list:
        if self.attachment is None:
            return []
        return [
            {"key": key, "name": name}
            for key, name in zip(self.attachment.public_ids or [], self.attachment.file_names or [])
        ]

    def __repr__(self):
        return (
            f"<Milestone(id={self.id}, title='{self.title}', status={self.status}, "
            f"project_id={self.project_id}, used_revisions={self.used_revisions}/{self.free_revisions})>"
        )
