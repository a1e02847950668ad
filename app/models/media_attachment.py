#app/models/media_attachment.py
from datetime import datetime
from sqlalchemy import (
    Column, Integer, DateTime, Text, JSON, ForeignKey, func
)
from sqlalchemy.orm import relationship
from app.models.base import Base

class MediaAttachment(Base):
    """
    MediaAttachment — пакет результатов этапа. Один на этап; ключи и имена файлов
    растут дописыванием, public_ids[i] соответствует file_names[i].
    """
    __tablename__ = "media_attachments"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    milestone_id: int = Column(Integer, ForeignKey("milestones.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    project_id: int = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    uploaded_by: int = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, doc="Кто загрузил")
    public_ids: list = Column(JSON, nullable=False, default=lambda: [], doc="Ключи объектов в хранилище")
    file_names: list = Column(JSON, nullable=False, default=lambda: [], doc="Исходные имена файлов")
    submission_notes: str = Column(Text, nullable=True, doc="Заметки к сдаче")
    uploaded_at: datetime = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    milestone = relationship("Milestone", back_populates="attachment")

    @property
    def file_count(self) -> int:
        return len(self.public_ids or [])

    def __repr__(self):
        return f"<MediaAttachment(id={self.id}, milestone_id={self.milestone_id}, files={self.file_count})>"
