#app/schemas/review.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

class ReviewCreate(BaseModel):
    """
    ReviewCreate — отзыв клиента о проекте или этапе.
    """
    project_id: int = Field(..., alias="projectId")
    milestone_id: Optional[int] = Field(None, alias="milestoneId")
    review: str = Field(..., min_length=10, max_length=2000)
    rating: int = Field(..., ge=1, le=5, description="Оценка 1-5")

    class Config:
        populate_by_name = True
        str_strip_whitespace = True

class ReviewRead(BaseModel):
    id: int
    project_id: int
    milestone_id: Optional[int] = None
    rating: int
    review: str
    client_email: str
    client_name: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
