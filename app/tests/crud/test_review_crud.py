import pytest
from sqlalchemy.orm import Session

from app.core.exceptions import AuthorizationError, MilestoneNotFound, StateConflictError
from app.crud.activity import list_activities
from app.crud.review import submit_review


def review_data(project_id: int, milestone_id=None, **overrides):
    data = {
        "project_id": project_id,
        "milestone_id": milestone_id,
        "rating": 4,
        "review": "Clear communication and solid work",
    }
    data.update(overrides)
    return data

def test_client_submits_milestone_review(db: Session, client_identity, make_project):
    project = make_project()
    milestone_id = project.milestones[0].id

    review = submit_review(db, client_identity, review_data(project.id, milestone_id))

    assert review.id is not None
    assert review.rating == 4
    assert review.client_email == "client@example.com"
    assert review.client_name == "Jane Client"
    assert list_activities(db, project.id)[0].activity_type == "review_submitted"

def test_duplicate_milestone_review_conflicts(db: Session, client_identity, make_project):
    project = make_project()
    milestone_id = project.milestones[0].id
    submit_review(db, client_identity, review_data(project.id, milestone_id))

    with pytest.raises(StateConflictError) as exc_info:
        submit_review(db, client_identity, review_data(project.id, milestone_id, rating=1))

    assert exc_info.value.status_code == 409
    assert exc_info.value.reason == "review_exists"

def test_project_level_review_once(db: Session, client_identity, make_project):
    project = make_project()
    submit_review(db, client_identity, review_data(project.id))
    submit_review(db, client_identity, review_data(project.id, project.milestones[0].id))

    with pytest.raises(StateConflictError):
        submit_review(db, client_identity, review_data(project.id))

def test_only_client_can_review(db: Session, agency, make_project):
    project = make_project()

    with pytest.raises(AuthorizationError):
        submit_review(db, agency, review_data(project.id))

def test_review_for_foreign_milestone(db: Session, client_identity, make_project):
    first = make_project()
    second = make_project()

    with pytest.raises(MilestoneNotFound):
        submit_review(db, client_identity, review_data(first.id, second.milestones[0].id))
