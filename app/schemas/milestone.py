#app/schemas/milestone.py
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime

class DeliverableFile(BaseModel):
    key: str
    name: str

class MilestoneRead(BaseModel):
    """
    MilestoneRead — этап с производными полями учёта ревизий.
    """
    id: int
    project_id: int
    title: str
    description: Optional[str] = None
    status: str
    position: int
    milestone_price: float
    duration_days: int
    due_date: Optional[datetime] = None
    free_revisions: int
    used_revisions: int
    revision_rate: float
    has_free_revisions_left: bool
    next_rejection_charge: float
    starting_notes: Optional[str] = None
    submission_notes: Optional[str] = None
    revision_notes: Optional[str] = None
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    files: List[DeliverableFile] = Field(default_factory=list)

    class Config:
        from_attributes = True

class MilestoneStartRequest(BaseModel):
    milestone_id: Optional[int] = Field(None, description="Должен совпадать с ID в пути, если передан")
    notes: Optional[str] = Field(None, max_length=1000, description="Заметки при старте")

class MilestoneResumeRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)

class MilestoneApproveRequest(BaseModel):
    milestone_id: Optional[int] = Field(None, alias="milestoneId")

    class Config:
        populate_by_name = True

class MilestoneRejectRequest(BaseModel):
    """
    MilestoneRejectRequest — отклонение сданного этапа с замечаниями.
    """
    milestone_id: Optional[int] = Field(None, alias="milestoneId")
    revision_notes: str = Field(..., alias="revisionNotes", max_length=1000)

    class Config:
        populate_by_name = True

    @field_validator("revision_notes")
    @classmethod
    def notes_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Revision notes are required for rejection")
        return v

class MilestoneUpdate(BaseModel):
    """
    MilestoneUpdate — редактирование этапа агентством. Статус здесь не меняется.
    """
    title: Optional[str] = Field(None, min_length=1, max_length=160)
    description: Optional[str] = None
    duration_days: Optional[int] = Field(None, gt=0)
    milestone_price: Optional[float] = Field(None, gt=0)
    free_revisions: Optional[int] = Field(None, ge=0)
    revision_rate: Optional[float] = Field(None, ge=0)

    class Config:
        extra = "forbid"
        str_strip_whitespace = True

class MilestoneStarted(BaseModel):
    milestone: MilestoneRead
    project_updated: bool
    activity_logged: bool

class MilestoneRejected(BaseModel):
    milestone: MilestoneRead
    was_free_revision: bool
    revision_charge: float
    used_revisions: int
    free_revisions: int
    has_free_revisions_left: bool
    new_milestone_price: float
    new_project_price: float

class FilesDeleted(BaseModel):
    deleted_keys: List[str] = Field(default_factory=list)
    deleted_attachment_ids: List[int] = Field(default_factory=list)
    milestone_status: str
