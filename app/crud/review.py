# app/crud/review.py
import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.core.exceptions import AuthorizationError, MilestoneNotFound, StateConflictError
from app.core.security import Identity
from app.core.statuses import ActivityType
from app.crud.activity import log_activity
from app.crud.project import is_client, lock_project
from app.database import transaction
from app.models.milestone import Milestone
from app.models.review import Review

logger = logging.getLogger("Delivery.Reviews")

def submit_review(db: Session, identity: Identity, data: dict) -> Review:
    """
    Отзыв клиента: один на этап и один общий на проект.
    """
    milestone_id: Optional[int] = data.get("milestone_id")
    with transaction(db, "review submission"):
        project = lock_project(db, data["project_id"])
        if not is_client(project, identity):
            raise AuthorizationError("Unauthorized to submit review for this project")

        milestone = None
        if milestone_id is not None:
            milestone = (
                db.query(Milestone)
                .filter(Milestone.id == milestone_id, Milestone.project_id == project.id)
                .first()
            )
            if not milestone:
                raise MilestoneNotFound("Milestone not found or does not belong to the specified project")

        existing = db.query(Review).filter(
            Review.project_id == project.id,
            Review.milestone_id == milestone_id if milestone_id is not None else Review.milestone_id.is_(None),
        ).first()
        if existing:
            raise StateConflictError(
                "Review already exists for this milestone" if milestone_id else "Review already exists for this project",
                reason="review_exists",
                details={"review_id": existing.id},
                status_code=409,
            )

        review = Review(
            project_id=project.id,
            milestone_id=milestone_id,
            rating=data["rating"],
            review=data["review"].strip(),
            client_email=identity.email.lower(),
            client_name=project.client_name,
        )
        db.add(review)
        db.flush()

        log_activity(
            db,
            project_id=project.id,
            milestone_id=milestone_id,
            activity_type=ActivityType.REVIEW_SUBMITTED,
            description=(
                f'Client reviewed milestone "{milestone.title}" ({review.rating}/5)'
                if milestone else f"Client reviewed the project ({review.rating}/5)"
            ),
            performed_by=identity.user_id,
            metadata={"review_id": review.id, "rating": review.rating},
        )
    logger.info(f"Review {review.id} submitted for project {project.id} (milestone_id={milestone_id})")
    return review
