import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.models.milestone import Milestone
from app.models.project import Project
from app.tests.factories import api_files


@pytest.fixture
def project_payload():
    return {
        "name": "Landing Redesign",
        "type": "Web Development",
        "description": "New marketing landing with CMS",
        "project_budget": 2000,
        "estimated_days": 30,
        "client_name": "Jane Client",
        "client_email": "client@example.com",
        "milestones": [
            {"name": "Wireframes", "duration_days": 5, "milestone_price": 600, "free_revisions": 2, "revision_rate": 60},
            {"name": "Build", "duration_days": 20, "milestone_price": 1400, "free_revisions": 1, "revision_rate": 120},
        ],
    }

def test_create_project(client: TestClient, agency_headers: dict, agency_user, project_payload: dict, db: Session):
    response = client.post("/projects/", json=project_payload, headers=agency_headers)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["milestone_count"] == 2
    project = db.query(Project).filter(Project.id == body["data"]["project_id"]).one()
    assert project.status == "pending"
    assert project.agency_id == agency_user.id
    assert [m.status for m in project.milestones] == ["not_started", "not_started"]

def test_create_project_budget_mismatch(client: TestClient, agency_headers: dict, project_payload: dict, db: Session):
    project_payload["project_budget"] = 5000

    response = client.post("/projects/", json=project_payload, headers=agency_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "Validation failed"
    assert db.query(Project).count() == 0

def test_create_project_unknown_type(client: TestClient, agency_headers: dict, project_payload: dict):
    project_payload["type"] = "Space Program"

    response = client.post("/projects/", json=project_payload, headers=agency_headers)

    assert response.status_code == 400
    assert "type" in response.json()["details"]["fieldErrors"]

def test_create_project_requires_milestones(client: TestClient, agency_headers: dict, project_payload: dict):
    project_payload["milestones"] = []

    response = client.post("/projects/", json=project_payload, headers=agency_headers)

    assert response.status_code == 400

def test_get_project_detail(client: TestClient, client_headers: dict, make_project):
    project = make_project(milestones=2, free_revisions=2)

    response = client.get(f"/projects/{project.id}", headers=client_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["id"] == project.id
    assert [m["position"] for m in data["milestones"]] == [1, 2]
    assert data["milestones"][0]["has_free_revisions_left"] is True
    assert data["milestones"][0]["next_rejection_charge"] == 0.0
    assert data["milestones"][0]["due_date"] is not None
    assert data["reviews"] == []

def test_get_project_outsider(client: TestClient, outsider_headers: dict, make_project):
    project = make_project()

    response = client.get(f"/projects/{project.id}", headers=outsider_headers)

    assert response.status_code == 403

def test_delete_project_blocked(client: TestClient, agency_headers: dict, make_project, db: Session):
    project = make_project()
    milestone_id = project.milestones[0].id
    client.post(f"/milestones/{milestone_id}/start", headers=agency_headers)
    client.post(
        f"/milestones/{milestone_id}/files",
        json={"milestoneId": milestone_id, "files": api_files("final.pdf", milestone_id=milestone_id)},
        headers=agency_headers,
    )

    response = client.delete(f"/projects/{project.id}", headers=agency_headers)

    assert response.status_code == 400
    body = response.json()
    assert body["reason"] == "project_has_deliverables"
    assert body["details"]["milestones_with_deliverables"][0]["id"] == milestone_id
    assert db.query(Milestone).filter(Milestone.project_id == project.id).count() == 1

def test_delete_project(client: TestClient, agency_headers: dict, make_project, db: Session):
    project = make_project(milestones=3)
    project_id = project.id

    response = client.delete(f"/projects/{project_id}", headers=agency_headers)

    assert response.status_code == 200
    assert response.json()["data"]["deleted"]["milestones"] == 3
    assert db.query(Project).filter(Project.id == project_id).first() is None

def test_project_activities_newest_first(client: TestClient, agency_headers: dict, client_headers: dict, make_project):
    project = make_project()
    milestone_id = project.milestones[0].id
    client.post(f"/milestones/{milestone_id}/start", headers=agency_headers)
    client.post(
        f"/milestones/{milestone_id}/files",
        json={"milestoneId": milestone_id, "files": api_files("a.pdf", milestone_id=milestone_id)},
        headers=agency_headers,
    )

    response = client.get(f"/projects/{project.id}/activities", headers=client_headers)

    assert response.status_code == 200
    activities = response.json()["data"]
    assert [a["activity_type"] for a in activities] == ["milestone_submitted", "milestone_started"]
    assert activities[0]["metadata"]["new_milestone_status"] == "submitted"
