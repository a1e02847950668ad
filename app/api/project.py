#app/api/project.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List
from app.schemas.project import ProjectCreate, ProjectDetail, ProjectCreated, ProjectDeleted
from app.schemas.activity import ActivityRead
from app.schemas.response import DataResponse
from app.crud.project import (
    create_project,
    get_project_detail,
    delete_project,
)
from app.crud.activity import list_activities
from app.core.security import Identity
from app.dependencies import get_db, get_current_identity

import logging

router = APIRouter(prefix="/projects", tags=["Projects"])
logger = logging.getLogger("Delivery.ProjectsAPI")

@router.post("/", response_model=DataResponse[ProjectCreated], status_code=status.HTTP_201_CREATED)
def create_new_project(
    data: ProjectCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """
    Создать проект вместе с этапами.
    """
    project = create_project(db, identity, data.model_dump())
    return DataResponse(
        message="Project created successfully",
        data=ProjectCreated(project_id=project.id, milestone_count=len(data.milestones)),
    )

@router.get("/{project_id}", response_model=DataResponse[ProjectDetail])
def get_one_project(
    project_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """
    Получить проект по ID с этапами и отзывами.
    """
    project = get_project_detail(db, identity, project_id)
    return DataResponse(data=ProjectDetail.model_validate(project))

@router.delete("/{project_id}", response_model=DataResponse[ProjectDeleted])
def delete_one_project(
    project_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """
    Удалить проект. Невозможно, если по этапам уже загружены файлы.
    """
    result = delete_project(db, identity, project_id)
    return DataResponse(message="Project deleted successfully", data=ProjectDeleted(**result))

@router.get("/{project_id}/activities", response_model=DataResponse[List[ActivityRead]])
def get_project_activities(
    project_id: int,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """
    Журнал активности проекта (новые первыми).
    """
    get_project_detail(db, identity, project_id)
    activities = list_activities(db, project_id, limit=limit)
    return DataResponse(data=[ActivityRead.model_validate(a) for a in activities])
