# app/crud/project.py
import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from app.core.exceptions import (
    AuthorizationError,
    ProjectNotFound,
    StateConflictError,
)
from app.core.hooks import PostCommitHooks
from app.core.security import Identity
from app.core.statuses import ActivityType, MilestoneStatus, ProjectStatus
from app.crud.activity import log_activity
from app.database import transaction
from app.models.activity import ProjectActivity
from app.models.media_attachment import MediaAttachment
from app.models.milestone import Milestone
from app.models.project import Project
from app.models.review import Review

logger = logging.getLogger("Delivery.Projects")

# ==== Права доступа ====

def is_agency(project: Project, identity: Identity) -> bool:
    return project.agency_id == identity.user_id

def is_client(project: Project, identity: Identity) -> bool:
    if not identity.email or not project.client_email:
        return False
    return project.client_email.strip().lower() == identity.email.strip().lower()

def ensure_agency(project: Project, identity: Identity, message: str = "Unauthorized access to project") -> None:
    if not is_agency(project, identity):
        raise AuthorizationError(message)

def ensure_participant(project: Project, identity: Identity, message: str = "Unauthorized access to project") -> None:
    """
    Агентство-владелец или клиент проекта.
    """
    if not (is_agency(project, identity) or is_client(project, identity)):
        raise AuthorizationError(message)

# ==== Чтение ====

def get_project(db: Session, project_id: int) -> Project:
    """
    Возвращает проект по ID.
    """
    project = db.query(Project).filter(Project.id == project_id).first()
    if not project:
        raise ProjectNotFound(f"Project with id={project_id} not found.")
    return project

def lock_project(db: Session, project_id: int) -> Project:
    """
    Проект под блокировкой строки (SELECT ... FOR UPDATE) до конца транзакции.
    """
    project = (
        db.query(Project)
        .filter(Project.id == project_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not project:
        raise ProjectNotFound(f"Project with id={project_id} not found.")
    return project

def get_project_detail(db: Session, identity: Identity, project_id: int) -> Project:
    """
    Проект с этапами и отзывами для агентства или клиента.
    """
    project = get_project(db, project_id)
    ensure_participant(project, identity)
    return project

# ==== Создание ====

def create_project(db: Session, identity: Identity, data: dict) -> Project:
    """
    Создаёт проект (status=pending) и все его этапы (not_started) одной транзакцией.
    """
    milestones: List[dict] = data.get("milestones") or []
    with transaction(db, "project creation"):
        project = Project(
            name=data["name"].strip(),
            description=data.get("description", ""),
            project_type=data.get("type"),
            status=ProjectStatus.PENDING.value,
            client_name=data["client_name"],
            client_email=data["client_email"].lower(),
            project_price=data["project_budget"],
            project_duration_days=data.get("estimated_days"),
            agency_id=identity.user_id,
        )
        db.add(project)
        db.flush()

        db.add_all([
            Milestone(
                project_id=project.id,
                title=m["name"],
                description=m.get("description") or "",
                status=MilestoneStatus.NOT_STARTED.value,
                position=index,
                milestone_price=m["milestone_price"],
                duration_days=m["duration_days"],
                free_revisions=m.get("free_revisions", 0),
                used_revisions=0,
                revision_rate=m.get("revision_rate", 0),
            )
            for index, m in enumerate(milestones, start=1)
        ])

        log_activity(
            db,
            project_id=project.id,
            activity_type=ActivityType.PROJECT_CREATED,
            description=f'Project "{project.name}" created with {len(milestones)} milestones',
            performed_by=identity.user_id,
            metadata={
                "client_name": project.client_name,
                "client_email": project.client_email,
                "total_budget": project.project_price,
                "duration_days": project.project_duration_days,
                "milestone_count": len(milestones),
            },
        )
    logger.info(f"Created project '{project.name}' (ID: {project.id}) with {len(milestones)} milestones")
    return project

# ==== Удаление ====

def _log_deletion(project_id: int, name: str, user_id: int, counts: Dict[str, int]) -> None:
    logger.info(
        f"{ActivityType.PROJECT_DELETED.value}: project {project_id} '{name}' deleted by user {user_id}; rows removed: {counts}"
    )

def delete_project(db: Session, identity: Identity, project_id: int) -> Dict[str, Any]:
    """
    Удаляет проект со всеми строками. Запрещено, если хоть у одного этапа есть загруженные файлы.
    """
    hooks = PostCommitHooks()
    with transaction(db, "project deletion"):
        project = lock_project(db, project_id)
        ensure_agency(project, identity, "Unauthorized access to project")

        rows = (
            db.query(Milestone.id, Milestone.title, Milestone.status, MediaAttachment.public_ids)
            .join(MediaAttachment, MediaAttachment.milestone_id == Milestone.id)
            .filter(Milestone.project_id == project.id)
            .all()
        )
        blocking = [
            {"id": row.id, "title": row.title, "status": row.status, "file_count": len(row.public_ids or [])}
            for row in rows if row.public_ids
        ]
        if blocking:
            raise StateConflictError(
                "Cannot delete project with submitted deliverables",
                reason="project_has_deliverables",
                details={"milestones_with_deliverables": blocking},
            )

        counts = {
            "media_attachments": db.query(MediaAttachment).filter(MediaAttachment.project_id == project.id).delete(synchronize_session=False),
            "reviews": db.query(Review).filter(Review.project_id == project.id).delete(synchronize_session=False),
            "project_activities": db.query(ProjectActivity).filter(ProjectActivity.project_id == project.id).delete(synchronize_session=False),
            "milestones": db.query(Milestone).filter(Milestone.project_id == project.id).delete(synchronize_session=False),
            "project": db.query(Project).filter(Project.id == project.id).delete(synchronize_session=False),
        }
        hooks.add("log project deletion", _log_deletion, project_id, project.name, identity.user_id, counts)
    hooks.run()
    db.expunge_all()
    return {"project_id": project_id, "deleted": counts}
