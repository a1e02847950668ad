#app/schemas/activity.py
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime

class ActivityRead(BaseModel):
    """
    ActivityRead — запись журнала аудита проекта.
    """
    id: int
    project_id: int
    milestone_id: Optional[int] = None
    activity_type: str
    description: str
    performed_by: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="activity_metadata")
    created_at: datetime

    class Config:
        from_attributes = True
        populate_by_name = True
