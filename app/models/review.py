#app/models/review.py
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, DateTime, Text, ForeignKey, CheckConstraint, func
)
from sqlalchemy.orm import relationship
from app.models.base import Base

class Review(Base):
    """
    Review — отзыв клиента о проекте (milestone_id is None) или об этапе. Не редактируется.
    """
    __tablename__ = "reviews"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    project_id: int = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    milestone_id: int = Column(Integer, ForeignKey("milestones.id", ondelete="CASCADE"), nullable=True, index=True)
    rating: int = Column(Integer, nullable=False, doc="Оценка 1-5")
    review: str = Column(Text, nullable=False, doc="Текст отзыва")
    client_email: str = Column(String(255), nullable=False)
    client_name: str = Column(String(128), nullable=True)
    created_at: datetime = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    project = relationship("Project", back_populates="reviews")

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
    )

    def __repr__(self):
        return f"<Review(id={self.id}, project_id={self.project_id}, milestone_id={self.milestone_id}, rating={self.rating})>"
