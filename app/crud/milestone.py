# app/crud/milestone.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core import revisions
from app.core.exceptions import (
    MilestoneNotFound,
    StateConflictError,
    ValidationError,
)
from app.core.security import Identity
from app.core.statuses import (
    STARTABLE_PROJECT_STATUSES,
    ActivityType,
    MilestoneStatus,
    ProjectStatus,
)
from app.crud.activity import log_activity
from app.crud.project import ensure_agency, ensure_participant
from app.database import transaction
from app.models.media_attachment import MediaAttachment
from app.models.milestone import Milestone
from app.models.project import Project
from app.models.review import Review

logger = logging.getLogger("Delivery.Milestones")

UNAUTHORIZED_MILESTONE = "Unauthorized access to milestone"

EDITABLE_FIELDS = (
    "title",
    "description",
    "duration_days",
    "milestone_price",
    "free_revisions",
    "revision_rate",
)

# ==== Чтение и блокировки ====

def get_milestone(db: Session, milestone_id: int) -> Milestone:
    """
    Возвращает этап по ID.
    """
    milestone = db.query(Milestone).filter(Milestone.id == milestone_id).first()
    if not milestone:
        raise MilestoneNotFound()
    return milestone

def get_milestone_for(db: Session, identity: Identity, milestone_id: int) -> Milestone:
    """
    Этап для агентства или клиента его проекта.
    """
    milestone = get_milestone(db, milestone_id)
    ensure_participant(milestone.project, identity, UNAUTHORIZED_MILESTONE)
    return milestone

def lock_milestone(db: Session, milestone_id: int) -> Tuple[Milestone, Project]:
    """
    Блокирует проект, затем этап (FOR UPDATE). Порядок одинаков для всех операций.
    """
    project_id = (
        db.query(Milestone.project_id)
        .filter(Milestone.id == milestone_id)
        .scalar()
    )
    if project_id is None:
        raise MilestoneNotFound()

    project = (
        db.query(Project)
        .filter(Project.id == project_id)
        .with_for_update()
        .populate_existing()
        .one()
    )
    milestone = (
        db.query(Milestone)
        .filter(Milestone.id == milestone_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not milestone:
        raise MilestoneNotFound()
    return milestone, project

def ensure_no_sibling_in_progress(db: Session, milestone: Milestone) -> None:
    sibling = (
        db.query(Milestone)
        .filter(
            Milestone.project_id == milestone.project_id,
            Milestone.id != milestone.id,
            Milestone.status == MilestoneStatus.IN_PROGRESS.value,
        )
        .first()
    )
    if sibling:
        raise StateConflictError(
            "Another milestone is already in progress",
            reason="sibling_in_progress",
            details={
                "in_progress_milestone": {
                    "id": sibling.id,
                    "title": sibling.title,
                    "status": sibling.status,
                }
            },
        )

def _ensure_project_startable(project: Project) -> None:
    if project.status not in STARTABLE_PROJECT_STATUSES:
        raise StateConflictError(
            f"Cannot start milestone: project status is '{project.status}'",
            reason="invalid_project_status",
            details={
                "project_status": project.status,
                "allowed_statuses": list(STARTABLE_PROJECT_STATUSES),
            },
        )

def _ensure_status(milestone: Milestone, expected: MilestoneStatus, action: str) -> None:
    if milestone.status != expected.value:
        raise StateConflictError(
            f"Cannot {action} milestone in current status: {milestone.status} (only '{expected.value}' allowed)",
            reason="invalid_milestone_status",
            details={
                "current_status": milestone.status,
                "allowed_status": expected.value,
            },
        )

def _now() -> datetime:
    return datetime.now(timezone.utc)

# ==== Переходы состояния ====

def start_milestone(db: Session, identity: Identity, milestone_id: int, notes: Optional[str] = None) -> Dict[str, Any]:
    """
    not_started -> in_progress. Проект pending переводится в in_progress.
    """
    with transaction(db, "milestone start"):
        milestone, project = lock_milestone(db, milestone_id)
        ensure_agency(project, identity, UNAUTHORIZED_MILESTONE)
        _ensure_project_startable(project)
        _ensure_status(milestone, MilestoneStatus.NOT_STARTED, "start")
        ensure_no_sibling_in_progress(db, milestone)

        milestone.status = MilestoneStatus.IN_PROGRESS.value
        milestone.started_at = _now()
        milestone.starting_notes = notes or None

        project_updated = project.status == ProjectStatus.PENDING.value
        if project_updated:
            project.status = ProjectStatus.IN_PROGRESS.value
        db.flush()

        log_activity(
            db,
            project_id=project.id,
            milestone_id=milestone.id,
            activity_type=ActivityType.MILESTONE_STARTED,
            description=f'Milestone "{milestone.title}" started',
            performed_by=identity.user_id,
            metadata={
                "notes": notes or None,
                "project_status_changed": project_updated,
                "previous_project_status": ProjectStatus.PENDING.value if project_updated else project.status,
            },
        )
    logger.info(f"Milestone {milestone.id} started by user {identity.user_id} (project_updated={project_updated})")
    return {"milestone": milestone, "project_updated": project_updated, "activity_logged": True}

def resume_milestone(db: Session, identity: Identity, milestone_id: int, notes: Optional[str] = None) -> Milestone:
    """
    rejected -> in_progress: агентство берёт отклонённый этап в доработку.
    """
    with transaction(db, "milestone resume"):
        milestone, project = lock_milestone(db, milestone_id)
        ensure_agency(project, identity, UNAUTHORIZED_MILESTONE)
        _ensure_project_startable(project)
        _ensure_status(milestone, MilestoneStatus.REJECTED, "resume")
        ensure_no_sibling_in_progress(db, milestone)

        milestone.status = MilestoneStatus.IN_PROGRESS.value
        if notes:
            milestone.starting_notes = notes
        if project.status == ProjectStatus.PENDING.value:
            project.status = ProjectStatus.IN_PROGRESS.value
        db.flush()

        log_activity(
            db,
            project_id=project.id,
            milestone_id=milestone.id,
            activity_type=ActivityType.MILESTONE_RESUMED,
            description=f'Milestone "{milestone.title}" returned to work after revision request',
            performed_by=identity.user_id,
            metadata={
                "notes": notes or None,
                "used_revisions": milestone.used_revisions,
                "revision_notes": milestone.revision_notes,
            },
        )
    logger.info(f"Milestone {milestone.id} resumed by user {identity.user_id}")
    return milestone

def approve_milestone(db: Session, identity: Identity, milestone_id: int) -> Milestone:
    """
    submitted -> approved. Ревизии не затрагиваются.
    """
    with transaction(db, "milestone approval"):
        milestone, project = lock_milestone(db, milestone_id)
        ensure_participant(project, identity, UNAUTHORIZED_MILESTONE)
        if milestone.status == MilestoneStatus.APPROVED.value:
            raise StateConflictError(
                "Milestone is already approved",
                reason="already_approved",
                details={"current_status": milestone.status},
            )
        _ensure_status(milestone, MilestoneStatus.SUBMITTED, "approve")

        milestone.status = MilestoneStatus.APPROVED.value
        milestone.approved_at = _now()
        db.flush()

        log_activity(
            db,
            project_id=project.id,
            milestone_id=milestone.id,
            activity_type=ActivityType.MILESTONE_APPROVED,
            description=f'Milestone "{milestone.title}" approved',
            performed_by=identity.user_id,
            metadata={"milestone_price": milestone.milestone_price},
        )
    logger.info(f"Milestone {milestone.id} approved by user {identity.user_id}")
    return milestone

def reject_milestone(db: Session, identity: Identity, milestone_id: int, revision_notes: str) -> Dict[str, Any]:
    """
    submitted -> rejected. used_revisions +1; сверх квоты ставка добавляется к цене этапа и проекта.
    """
    notes = (revision_notes or "").strip()
    if not notes:
        raise ValidationError(
            "Revision notes are required for rejection",
            details={"fieldErrors": {"revisionNotes": ["Revision notes are required for rejection"]}},
        )

    with transaction(db, "milestone rejection"):
        milestone, project = lock_milestone(db, milestone_id)
        ensure_participant(project, identity, UNAUTHORIZED_MILESTONE)
        _ensure_status(milestone, MilestoneStatus.SUBMITTED, "reject")

        charge = revisions.apply_rejection(
            milestone.used_revisions,
            milestone.free_revisions,
            milestone.revision_rate,
        )
        milestone.status = MilestoneStatus.REJECTED.value
        milestone.used_revisions = charge.used_revisions
        milestone.revision_notes = notes
        milestone.rejected_at = _now()
        if charge.charge > 0:
            milestone.milestone_price = round(float(milestone.milestone_price or 0) + charge.charge, 2)
            project.project_price = round(float(project.project_price or 0) + charge.charge, 2)
        db.flush()

        log_activity(
            db,
            project_id=project.id,
            milestone_id=milestone.id,
            activity_type=ActivityType.MILESTONE_REJECTED,
            description=(
                f'Milestone "{milestone.title}" rejected (free revision {charge.used_revisions}/{charge.free_revisions})'
                if charge.was_free
                else f'Milestone "{milestone.title}" rejected (paid revision, ${charge.charge:.2f})'
            ),
            performed_by=identity.user_id,
            metadata={
                "revision_notes": notes,
                "rejection_number": charge.rejection_number,
                "was_free_revision": charge.was_free,
                "revision_charge": charge.charge,
                "used_revisions": charge.used_revisions,
                "free_revisions": charge.free_revisions,
            },
        )
    logger.info(
        f"Milestone {milestone.id} rejected by user {identity.user_id} "
        f"(revision {charge.used_revisions}, charge={charge.charge})"
    )
    return {
        "milestone": milestone,
        "was_free_revision": charge.was_free,
        "revision_charge": charge.charge,
        "used_revisions": charge.used_revisions,
        "free_revisions": charge.free_revisions,
        "has_free_revisions_left": charge.has_free_revisions_left,
        "new_milestone_price": milestone.milestone_price,
        "new_project_price": project.project_price,
    }

# ==== Редактирование и удаление ====

def _sibling_total(db: Session, milestone: Milestone, column):
    return (
        db.query(func.coalesce(func.sum(column), 0))
        .filter(Milestone.project_id == milestone.project_id, Milestone.id != milestone.id)
        .scalar()
    )

def _recalculate_project_totals(db: Session, project: Project) -> Dict[str, Any]:
    """
    Цена и длительность проекта = суммы по оставшимся этапам. Без этапов проект снова pending.
    """
    total_price, total_days, remaining = (
        db.query(
            func.coalesce(func.sum(Milestone.milestone_price), 0),
            func.coalesce(func.sum(Milestone.duration_days), 0),
            func.count(Milestone.id),
        )
        .filter(Milestone.project_id == project.id)
        .one()
    )
    project.project_price = round(float(total_price), 2)
    project.project_duration_days = int(total_days)
    if remaining == 0:
        project.status = ProjectStatus.PENDING.value
    db.flush()
    return {
        "project_price": project.project_price,
        "project_duration_days": project.project_duration_days,
        "remaining_milestones": remaining,
        "project_status": project.status,
    }

def update_milestone(db: Session, identity: Identity, milestone_id: int, data: dict) -> Milestone:
    """
    Частичное обновление полей этапа агентством. Статус меняется только переходами.
    """
    changes = {k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None}
    with transaction(db, "milestone update"):
        milestone, project = lock_milestone(db, milestone_id)
        ensure_agency(project, identity, UNAUTHORIZED_MILESTONE)
        if not changes:
            return milestone

        if "free_revisions" in changes and changes["free_revisions"] < (milestone.used_revisions or 0):
            raise ValidationError(
                "Free revisions cannot be lower than revisions already used",
                details={"fieldErrors": {"free_revisions": [f"Must be at least {milestone.used_revisions}"]}},
            )

        if "milestone_price" in changes:
            others = _sibling_total(db, milestone, Milestone.milestone_price)
            new_total = round(float(others) + float(changes["milestone_price"]), 2)
            if new_total > float(project.project_price or 0):
                raise StateConflictError(
                    "Milestone prices exceed project budget",
                    reason="exceeds_project_budget",
                    details={
                        "project_price": project.project_price,
                        "new_total": new_total,
                        "overage": round(new_total - float(project.project_price or 0), 2),
                    },
                )

        if "duration_days" in changes and project.project_duration_days is not None:
            new_total_days = int(_sibling_total(db, milestone, Milestone.duration_days)) + int(changes["duration_days"])
            if new_total_days > project.project_duration_days:
                raise StateConflictError(
                    "Milestone duration update would exceed project timeline",
                    reason="exceeds_project_timeline",
                    details={
                        "project_duration_days": project.project_duration_days,
                        "new_total": new_total_days,
                        "overage": new_total_days - project.project_duration_days,
                    },
                )

        previous = {field: getattr(milestone, field) for field in changes}
        for field, value in changes.items():
            setattr(milestone, field, value)
        db.flush()

        log_activity(
            db,
            project_id=project.id,
            milestone_id=milestone.id,
            activity_type=ActivityType.MILESTONE_UPDATED,
            description=f'Milestone "{milestone.title}" updated: {", ".join(sorted(changes))}',
            performed_by=identity.user_id,
            metadata={"previous": previous, "changes": changes},
        )
    logger.info(f"Milestone {milestone.id} updated fields {sorted(changes)}")
    return milestone

def delete_milestone(db: Session, identity: Identity, milestone_id: int) -> Dict[str, Any]:
    """
    Удаляет этап, который ещё не начат и не содержит файлов.
    """
    with transaction(db, "milestone deletion"):
        milestone, project = lock_milestone(db, milestone_id)
        ensure_agency(project, identity, UNAUTHORIZED_MILESTONE)
        _ensure_status(milestone, MilestoneStatus.NOT_STARTED, "delete")

        bundle = db.query(MediaAttachment).filter(MediaAttachment.milestone_id == milestone.id).first()
        if bundle and bundle.public_ids:
            raise StateConflictError(
                "Cannot delete milestone with uploaded files",
                reason="milestone_has_deliverables",
                details={"file_count": bundle.file_count},
            )
        if bundle:
            db.delete(bundle)
        db.query(Review).filter(Review.milestone_id == milestone.id).delete(synchronize_session=False)

        title = milestone.title
        db.delete(milestone)
        db.flush()
        totals = _recalculate_project_totals(db, project)

        log_activity(
            db,
            project_id=project.id,
            milestone_id=None,
            activity_type=ActivityType.MILESTONE_DELETED,
            description=f'Milestone "{title}" deleted',
            performed_by=identity.user_id,
            metadata={"milestone_id": milestone_id, "title": title, **totals},
        )
    logger.info(
        f"Milestone {milestone_id} deleted from project {project.id} "
        f"(price={totals['project_price']}, days={totals['project_duration_days']})"
    )
    return {"milestone_id": milestone_id, "project_id": project.id}
