#app/crud/activity.py
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.statuses import ActivityType
from app.models.activity import ProjectActivity

logger = logging.getLogger("Delivery.Activity")

def log_activity(
    db: Session,
    project_id: int,
    activity_type: ActivityType,
    description: str,
    performed_by: Optional[int],
    milestone_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> ProjectActivity:
    """
    Добавляет запись аудита в текущую транзакцию (без commit).
    Если транзакция откатится, запись исчезнет вместе с переходом.
    """
    entry = ProjectActivity(
        project_id=project_id,
        milestone_id=milestone_id,
        activity_type=ActivityType(activity_type).value,
        description=description,
        performed_by=performed_by,
        activity_metadata=metadata or {},
    )
    db.add(entry)
    db.flush()
    logger.info(f"Activity '{entry.activity_type}' logged for project {project_id} (milestone_id={milestone_id})")
    return entry

def list_activities(db: Session, project_id: int, limit: int = 50) -> List[ProjectActivity]:
    """
    Журнал проекта, новые записи первыми.
    """
    return (
        db.query(ProjectActivity)
        .filter(ProjectActivity.project_id == project_id)
        .order_by(ProjectActivity.created_at.desc(), ProjectActivity.id.desc())
        .limit(limit)
        .all()
    )
