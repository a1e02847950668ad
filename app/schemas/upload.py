#app/schemas/upload.py
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Literal
from datetime import datetime

# Подставляется, если заметки к сдаче не переданы
PLACEHOLDER_SUBMISSION_NOTES = "No submission notes provided"

class PresignRequest(BaseModel):
    """
    PresignRequest — запрос временной ссылки на запись (write) или чтение (read) файла.
    """
    filename: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[str] = Field(None, min_length=1, description="MIME-тип файла")
    size: Optional[int] = Field(None, ge=1, description="Размер в байтах")
    milestone_id: int = Field(..., alias="milestoneId")
    mode: Literal["write", "read"] = "write"
    key: Optional[str] = Field(None, min_length=1, description="Ключ объекта (для mode=read)")

    class Config:
        populate_by_name = True

    @field_validator("filename")
    @classmethod
    def no_path_separators(cls, v):
        if v is not None and ("/" in v or "\\" in v):
            raise ValueError("Invalid filename")
        return v

    @model_validator(mode="after")
    def check_mode_fields(self):
        if self.mode == "write":
            missing = [f for f in ("filename", "type", "size") if getattr(self, f) is None]
            if missing:
                raise ValueError(f"Missing required fields for upload: {', '.join(missing)}")
        elif not self.key:
            raise ValueError("key is required for read mode")
        return self

class PresignData(BaseModel):
    url: str
    key: str
    expires_at: datetime = Field(..., alias="expiresAt")
    expires_in: int = Field(..., alias="expiresIn")

    class Config:
        populate_by_name = True

class FileDescriptor(BaseModel):
    """
    FileDescriptor — файл, уже загруженный клиентом в хранилище.
    """
    key: str = Field(..., min_length=1, description="Ключ объекта")
    name: str = Field(..., min_length=1, description="Имя файла")
    size: int = Field(..., ge=1, description="Размер в байтах")
    type: str = Field(..., min_length=1, description="MIME-тип")
    last_modified: Optional[int] = Field(None, alias="lastModified")

    class Config:
        populate_by_name = True
        str_strip_whitespace = True

class RecordFilesRequest(BaseModel):
    """
    RecordFilesRequest — запись пакета загруженных файлов (или только заметок) для этапа.
    """
    milestone_id: Optional[int] = Field(None, alias="milestoneId")
    files: List[FileDescriptor] = Field(default_factory=list)
    submission_notes: Optional[str] = Field(None, alias="submissionNotes")

    class Config:
        populate_by_name = True

    @field_validator("submission_notes")
    @classmethod
    def check_notes(cls, v):
        notes = (v or "").strip()
        if not notes:
            return PLACEHOLDER_SUBMISSION_NOTES
        if len(notes) < 5:
            raise ValueError("Submission notes must be at least 5 characters")
        if len(notes) > 500:
            raise ValueError("Submission notes must not exceed 500 characters")
        return notes

    @model_validator(mode="after")
    def default_notes(self):
        if self.submission_notes is None:
            self.submission_notes = PLACEHOLDER_SUBMISSION_NOTES
        return self

class RecordFilesData(BaseModel):
    files_processed: int = Field(..., alias="filesProcessed")
    total_files: int = Field(..., alias="totalFiles")
    is_update: bool = Field(..., alias="isUpdate")
    milestone_status_updated: bool = Field(..., alias="milestoneStatusUpdated")
    previous_milestone_status: str = Field(..., alias="previousMilestoneStatus")
    new_milestone_status: str = Field(..., alias="newMilestoneStatus")

    class Config:
        populate_by_name = True
