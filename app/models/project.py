#app/models/project.py
from datetime import datetime
from app.models.base import Base
from app.core.statuses import ProjectStatus
from sqlalchemy import (
    Column, Integer, String, DateTime, Text, Numeric, ForeignKey, Index, func
)
from sqlalchemy.orm import relationship

class Project(Base):
    """
    Project — проект агентства для одного клиента, состоит из последовательных этапов (milestones).
    """
    __tablename__ = "projects"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    name: str = Column(String(128), nullable=False, index=True, doc="Название проекта")
    description: str = Column(Text, nullable=True, doc="Описание")
    project_type: str = Column("type", String(64), nullable=True, doc="Тип проекта: Web Development, Branding, ...")
    status: str = Column(String(32), nullable=False, default=ProjectStatus.PENDING.value, index=True, doc="Статус: pending, in_progress, completed, cancelled")
    client_name: str = Column(String(128), nullable=False, doc="Имя клиента")
    client_email: str = Column(String(255), nullable=False, index=True, doc="Email клиента (по нему клиент получает доступ)")
    project_price: float = Column(Numeric(12, 2, asdecimal=False), nullable=False, default=0, doc="Бюджет проекта")
    project_duration_days: int = Column(Integer, nullable=True, doc="Оценка длительности, дней")
    agency_id: int = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True, doc="Агентство-владелец")
    created_at: datetime = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, doc="Дата создания")
    updated_at: datetime = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, doc="Дата изменения")

    milestones = relationship("Milestone", back_populates="project", order_by="Milestone.position")
    reviews = relationship("Review", back_populates="project", order_by="Review.created_at")

    __table_args__ = (
        Index("ix_projects_agency_id_status", "agency_id", "status"),
    )

    def __repr__(self):
        return (
            f"<Project(id={self.id}, name='{self.name}', status='{self.status}', agency_id={self.agency_id})>"
        )
