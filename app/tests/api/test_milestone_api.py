import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.models.media_attachment import MediaAttachment
from app.models.milestone import Milestone
from app.tests.factories import api_files


def start(client: TestClient, milestone_id: int, headers: dict):
    return client.post(f"/milestones/{milestone_id}/start", json={"milestone_id": milestone_id}, headers=headers)

def upload(client: TestClient, milestone_id: int, headers: dict, *names: str, notes: str = "v1 draft"):
    return client.post(
        f"/milestones/{milestone_id}/files",
        json={"milestoneId": milestone_id, "files": api_files(*names, milestone_id=milestone_id), "submissionNotes": notes},
        headers=headers,
    )

def test_full_revision_cycle(client: TestClient, agency_headers: dict, client_headers: dict, make_project):
    project = make_project(status="pending", free_revisions=1, revision_rate=50.0, milestone_price=500.0)
    milestone_id = project.milestones[0].id

    response = client.post(
        f"/milestones/{milestone_id}/start",
        json={"milestone_id": milestone_id, "notes": "Kickoff done"},
        headers=agency_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Milestone started successfully"
    assert body["data"]["project_updated"] is True
    assert body["data"]["activity_logged"] is True
    assert body["data"]["milestone"]["status"] == "in_progress"
    assert body["data"]["milestone"]["starting_notes"] == "Kickoff done"

    response = upload(client, milestone_id, agency_headers, "a.pdf", "b.pdf")
    assert response.status_code == 200
    assert response.json()["message"] == "Milestone submitted successfully with 2 files"
    assert response.json()["data"] == {
        "filesProcessed": 2,
        "totalFiles": 2,
        "isUpdate": False,
        "milestoneStatusUpdated": True,
        "previousMilestoneStatus": "in_progress",
        "newMilestoneStatus": "submitted",
    }

    response = client.post(
        f"/milestones/{milestone_id}/reject",
        json={"milestoneId": milestone_id, "revisionNotes": "fix colors"},
        headers=client_headers,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["milestone"]["status"] == "rejected"
    assert data["used_revisions"] == 1
    assert data["was_free_revision"] is True
    assert data["has_free_revisions_left"] is False
    assert data["milestone"]["next_rejection_charge"] == 50.0

    response = client.post(f"/milestones/{milestone_id}/resume", headers=agency_headers)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "in_progress"

    response = upload(client, milestone_id, agency_headers, "c.pdf", notes="v2 with new colors")
    assert response.json()["data"]["isUpdate"] is True
    assert response.json()["data"]["totalFiles"] == 3
    assert response.json()["data"]["newMilestoneStatus"] == "submitted"

    response = client.post(
        f"/milestones/{milestone_id}/reject",
        json={"milestoneId": milestone_id, "revisionNotes": "still off"},
        headers=client_headers,
    )
    data = response.json()["data"]
    assert data["was_free_revision"] is False
    assert data["revision_charge"] == 50.0
    assert data["new_milestone_price"] == 550.0
    assert response.json()["message"] == "Milestone rejected (revision charged: $50.00)"

    response = client.get(f"/milestones/{milestone_id}", headers=client_headers)
    milestone = response.json()["data"]
    assert milestone["used_revisions"] == 2
    assert [f["name"] for f in milestone["files"]] == ["a.pdf", "b.pdf", "c.pdf"]

def test_approve_submitted_milestone(client: TestClient, agency_headers: dict, client_headers: dict, make_project):
    project = make_project()
    milestone_id = project.milestones[0].id
    start(client, milestone_id, agency_headers)
    upload(client, milestone_id, agency_headers, "final.pdf")

    response = client.post(f"/milestones/{milestone_id}/approve", json={"milestoneId": milestone_id}, headers=client_headers)

    assert response.status_code == 200
    assert response.json()["message"] == "Milestone approved successfully"
    assert response.json()["data"]["status"] == "approved"
    assert response.json()["data"]["approved_at"] is not None

def test_start_without_body(client: TestClient, agency_headers: dict, make_project):
    project = make_project()

    response = client.post(f"/milestones/{project.milestones[0].id}/start", headers=agency_headers)

    assert response.status_code == 200
    assert response.json()["data"]["milestone"]["status"] == "in_progress"

def test_start_with_mismatched_body_id(client: TestClient, agency_headers: dict, make_project):
    project = make_project()
    milestone_id = project.milestones[0].id

    response = client.post(f"/milestones/{milestone_id}/start", json={"milestone_id": milestone_id + 1}, headers=agency_headers)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["error"] == "Milestone ID in body does not match URL"

def test_start_with_sibling_in_progress(client: TestClient, agency_headers: dict, make_project):
    project = make_project(milestones=2)
    first, second = project.milestones
    start(client, first.id, agency_headers)

    response = start(client, second.id, agency_headers)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["reason"] == "sibling_in_progress"
    assert body["details"]["in_progress_milestone"]["id"] == first.id

def test_start_closed_project(client: TestClient, agency_headers: dict, make_project):
    project = make_project(status="completed")

    response = start(client, project.milestones[0].id, agency_headers)

    assert response.status_code == 400
    assert response.json()["reason"] == "invalid_project_status"

def test_start_by_client_forbidden(client: TestClient, client_headers: dict, make_project):
    project = make_project()

    response = start(client, project.milestones[0].id, client_headers)

    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "Unauthorized access to milestone"}

def test_unknown_milestone(client: TestClient, agency_headers: dict):
    response = start(client, 4242, agency_headers)

    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Milestone not found"}

def test_record_files_validation(client: TestClient, agency_headers: dict, make_project):
    project = make_project()
    milestone_id = project.milestones[0].id

    response = upload(client, milestone_id, agency_headers, "a.pdf", notes="abc")

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation failed"
    assert "submissionNotes" in body["details"]["fieldErrors"]

def test_record_files_rejects_empty_file(client: TestClient, agency_headers: dict, make_project):
    project = make_project()
    milestone_id = project.milestones[0].id
    files = api_files("a.pdf", milestone_id=milestone_id)
    files[0]["size"] = 0

    response = client.post(f"/milestones/{milestone_id}/files", json={"milestoneId": milestone_id, "files": files}, headers=agency_headers)

    assert response.status_code == 400
    assert "files.0.size" in response.json()["details"]["fieldErrors"]

def test_record_files_outsider(client: TestClient, agency_headers: dict, outsider_headers: dict, make_project, db: Session):
    project = make_project()
    milestone_id = project.milestones[0].id
    start(client, milestone_id, agency_headers)

    response = upload(client, milestone_id, outsider_headers, "a.pdf")

    assert response.status_code == 403
    assert response.json()["error"] == "Unauthorized access to milestone"
    assert db.query(MediaAttachment).count() == 0

def test_record_notes_only_uses_placeholder(client: TestClient, agency_headers: dict, make_project, db: Session):
    project = make_project()
    milestone_id = project.milestones[0].id
    start(client, milestone_id, agency_headers)

    response = client.post(f"/milestones/{milestone_id}/files", json={"milestoneId": milestone_id, "files": []}, headers=agency_headers)

    assert response.status_code == 200
    assert response.json()["message"] == "Milestone submitted successfully without files"
    bundle = db.query(MediaAttachment).filter(MediaAttachment.milestone_id == milestone_id).one()
    assert bundle.submission_notes == "No submission notes provided"

def test_reject_requires_notes(client: TestClient, agency_headers: dict, client_headers: dict, make_project):
    project = make_project()
    milestone_id = project.milestones[0].id
    start(client, milestone_id, agency_headers)
    upload(client, milestone_id, agency_headers, "a.pdf")

    response = client.post(f"/milestones/{milestone_id}/reject", json={"milestoneId": milestone_id, "revisionNotes": "  "}, headers=client_headers)

    assert response.status_code == 400
    assert "revisionNotes" in response.json()["details"]["fieldErrors"]

def test_patch_milestone(client: TestClient, agency_headers: dict, make_project):
    project = make_project(milestones=2, milestone_price=500.0)
    milestone_id = project.milestones[0].id

    response = client.patch(f"/milestones/{milestone_id}", json={"title": "Wireframes", "free_revisions": 3}, headers=agency_headers)

    assert response.status_code == 200
    assert response.json()["data"]["title"] == "Wireframes"
    assert response.json()["data"]["free_revisions"] == 3

def test_patch_cannot_change_status(client: TestClient, agency_headers: dict, make_project):
    project = make_project()

    response = client.patch(f"/milestones/{project.milestones[0].id}", json={"status": "approved"}, headers=agency_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "Validation failed"

def test_patch_over_budget(client: TestClient, agency_headers: dict, make_project):
    project = make_project(milestones=2, milestone_price=500.0)

    response = client.patch(f"/milestones/{project.milestones[0].id}", json={"milestone_price": 900}, headers=agency_headers)

    assert response.status_code == 400
    assert response.json()["reason"] == "exceeds_project_budget"

def test_patch_over_timeline(client: TestClient, agency_headers: dict, make_project):
    project = make_project(milestones=2, duration_days=7)

    response = client.patch(f"/milestones/{project.milestones[0].id}", json={"duration_days": 90}, headers=agency_headers)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Milestone duration update would exceed project timeline"
    assert body["reason"] == "exceeds_project_timeline"
    assert body["details"] == {"project_duration_days": 30, "new_total": 97, "overage": 67}

def test_delete_files_endpoint(client: TestClient, agency_headers: dict, make_project, storage, db: Session):
    project = make_project()
    milestone_id = project.milestones[0].id
    start(client, milestone_id, agency_headers)
    upload(client, milestone_id, agency_headers, "a.pdf", "b.pdf")

    response = client.delete(f"/milestones/{milestone_id}/files", headers=agency_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["milestone_status"] == "in_progress"
    assert len(data["deleted_keys"]) == 2
    assert storage.deleted == data["deleted_keys"]
    db.expire_all()
    assert db.query(Milestone).filter(Milestone.id == milestone_id).one().status == "in_progress"

def test_delete_milestone_endpoint(client: TestClient, agency_headers: dict, make_project, db: Session):
    project = make_project(milestones=2)
    milestone_id = project.milestones[1].id

    response = client.delete(f"/milestones/{milestone_id}", headers=agency_headers)

    assert response.status_code == 200
    assert response.json()["data"]["milestone_id"] == milestone_id
    assert db.query(Milestone).filter(Milestone.id == milestone_id).first() is None
