#app/schemas/project.py
from pydantic import BaseModel, Field, EmailStr, field_validator, model_validator
from typing import Optional, List, Literal
from datetime import datetime

from app.schemas.milestone import MilestoneRead
from app.schemas.review import ReviewRead

PROJECT_TYPES = (
    "Web Development",
    "Mobile Development",
    "UI/UX Design",
    "Branding",
    "Digital Marketing",
    "E-commerce",
    "Custom Software",
    "Other",
)

# Допустимое отклонение суммы этапов от бюджета проекта
BUDGET_TOLERANCE = 0.1

class MilestoneCreate(BaseModel):
    """
    MilestoneCreate — этап, создаваемый вместе с проектом.
    """
    name: str = Field(..., min_length=3, max_length=100, examples=["Wireframes"], description="Название этапа")
    duration_days: int = Field(..., ge=1, le=90, description="Длительность, дней")
    milestone_price: float = Field(..., ge=50, le=100000, description="Стоимость этапа")
    free_revisions: int = Field(0, ge=0, le=50, description="Бесплатные ревизии")
    revision_rate: float = Field(0, ge=0, description="Стоимость ревизии сверх квоты")
    description: Optional[str] = Field("", max_length=500, description="Описание")

    class Config:
        str_strip_whitespace = True

class ProjectCreate(BaseModel):
    """
    ProjectCreate — создание проекта вместе с этапами.
    """
    name: str = Field(..., min_length=3, max_length=100, pattern=r"^[a-zA-Z0-9\s\-_&.]+$", examples=["Landing Redesign"])
    type: Literal[PROJECT_TYPES] = Field(..., description="Тип проекта")
    description: str = Field(..., min_length=10, max_length=1000)
    project_budget: float = Field(..., ge=100, le=1_000_000, description="Бюджет проекта")
    estimated_days: int = Field(..., ge=1, le=365, description="Оценка длительности, дней")
    client_name: str = Field(..., min_length=2, max_length=50, pattern=r"^[a-zA-Z\s\-']+$")
    client_email: EmailStr = Field(..., description="Email клиента")
    milestones: List[MilestoneCreate] = Field(..., min_length=1, max_length=10)

    class Config:
        str_strip_whitespace = True

    @field_validator("client_email", mode="after")
    @classmethod
    def lower_email(cls, v):
        return str(v).lower()

    @model_validator(mode="after")
    def check_budget(self):
        total = sum(m.milestone_price for m in self.milestones)
        if total < 100:
            raise ValueError("The total of all milestone prices must be at least $100")
        if abs(total - self.project_budget) > self.project_budget * BUDGET_TOLERANCE:
            raise ValueError("Total milestone prices must be within 10% of project budget")
        return self

class ProjectRead(BaseModel):
    """
    ProjectRead — проект без вложенных сущностей.
    """
    id: int
    name: str
    description: Optional[str] = None
    project_type: Optional[str] = None
    status: str
    client_name: str
    client_email: str
    project_price: float
    project_duration_days: Optional[int] = None
    agency_id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class ProjectDetail(ProjectRead):
    """
    ProjectDetail — проект с этапами (по порядку) и отзывами.
    """
    milestones: List[MilestoneRead] = Field(default_factory=list)
    reviews: List[ReviewRead] = Field(default_factory=list)

class ProjectCreated(BaseModel):
    project_id: int
    milestone_count: int

class ProjectDeleted(BaseModel):
    project_id: int
    deleted: dict = Field(default_factory=dict, description="Число удалённых строк по таблицам")
