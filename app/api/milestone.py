#app/api/milestone.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.exceptions import ValidationError
from app.core.security import Identity
from app.crud.milestone import (
    approve_milestone,
    delete_milestone,
    get_milestone_for,
    reject_milestone,
    resume_milestone,
    start_milestone,
    update_milestone,
)
from app.crud.upload import (
    SubmitMilestoneViaUpload,
    delete_milestone_files,
    record_uploaded_files,
)
from app.dependencies import get_db, get_current_identity, get_storage
from app.schemas.milestone import (
    FilesDeleted,
    MilestoneApproveRequest,
    MilestoneRead,
    MilestoneRejectRequest,
    MilestoneRejected,
    MilestoneResumeRequest,
    MilestoneStartRequest,
    MilestoneStarted,
    MilestoneUpdate,
)
from app.schemas.response import DataResponse, SuccessResponse
from app.schemas.upload import RecordFilesData, RecordFilesRequest
from app.services.storage import ObjectStorage

router = APIRouter(prefix="/milestones", tags=["Milestones"])
logger = logging.getLogger("Delivery.MilestonesAPI")

def _check_body_id(milestone_id: int, body_id: Optional[int]) -> None:
    if body_id is not None and body_id != milestone_id:
        raise ValidationError(
            "Milestone ID in body does not match URL",
            details={"fieldErrors": {"milestoneId": ["Does not match the milestone in the URL"]}},
        )

@router.get("/{milestone_id}", response_model=DataResponse[MilestoneRead])
def get_one_milestone(
    milestone_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """
    Получить этап по ID.
    """
    milestone = get_milestone_for(db, identity, milestone_id)
    return DataResponse(data=MilestoneRead.model_validate(milestone))

@router.patch("/{milestone_id}", response_model=DataResponse[MilestoneRead])
def update_one_milestone(
    milestone_id: int,
    data: MilestoneUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """
    Обновить поля этапа (без смены статуса).
    """
    milestone = update_milestone(db, identity, milestone_id, data.model_dump(exclude_unset=True))
    return DataResponse(message="Milestone updated successfully", data=MilestoneRead.model_validate(milestone))

@router.delete("/{milestone_id}", response_model=SuccessResponse)
def delete_one_milestone(
    milestone_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """
    Удалить не начатый этап без файлов.
    """
    result = delete_milestone(db, identity, milestone_id)
    return SuccessResponse(message="Milestone deleted successfully", data=result)

@router.post("/{milestone_id}/start", response_model=DataResponse[MilestoneStarted])
def start_one_milestone(
    milestone_id: int,
    data: Optional[MilestoneStartRequest] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """
    Начать работу над этапом (not_started -> in_progress).
    """
    data = data or MilestoneStartRequest()
    _check_body_id(milestone_id, data.milestone_id)
    result = start_milestone(db, identity, milestone_id, data.notes)
    return DataResponse(
        message="Milestone started successfully",
        data=MilestoneStarted(
            milestone=MilestoneRead.model_validate(result["milestone"]),
            project_updated=result["project_updated"],
            activity_logged=result["activity_logged"],
        ),
    )

@router.post("/{milestone_id}/resume", response_model=DataResponse[MilestoneRead])
def resume_one_milestone(
    milestone_id: int,
    data: Optional[MilestoneResumeRequest] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """
    Вернуть отклонённый этап в работу (rejected -> in_progress).
    """
    notes = data.notes if data else None
    milestone = resume_milestone(db, identity, milestone_id, notes)
    return DataResponse(message="Milestone returned to work", data=MilestoneRead.model_validate(milestone))

@router.post("/{milestone_id}/approve", response_model=DataResponse[MilestoneRead])
def approve_one_milestone(
    milestone_id: int,
    data: Optional[MilestoneApproveRequest] = None,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """
    Принять сданный этап.
    """
    if data:
        _check_body_id(milestone_id, data.milestone_id)
    milestone = approve_milestone(db, identity, milestone_id)
    return DataResponse(message="Milestone approved successfully", data=MilestoneRead.model_validate(milestone))

@router.post("/{milestone_id}/reject", response_model=DataResponse[MilestoneRejected])
def reject_one_milestone(
    milestone_id: int,
    data: MilestoneRejectRequest,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """
    Отклонить сданный этап с замечаниями (расходует ревизию).
    """
    _check_body_id(milestone_id, data.milestone_id)
    result = reject_milestone(db, identity, milestone_id, data.revision_notes)
    message = (
        "Milestone rejected (free revision used)"
        if result["was_free_revision"]
        else f"Milestone rejected (revision charged: ${result['revision_charge']:.2f})"
    )
    result["milestone"] = MilestoneRead.model_validate(result["milestone"])
    return DataResponse(message=message, data=MilestoneRejected(**result))

@router.post("/{milestone_id}/files", response_model=DataResponse[RecordFilesData])
def record_milestone_files(
    milestone_id: int,
    data: RecordFilesRequest,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """
    Записать загруженные в хранилище файлы (и заметки) в результаты этапа.
    """
    _check_body_id(milestone_id, data.milestone_id)
    command = SubmitMilestoneViaUpload.from_request(milestone_id, data)
    result = record_uploaded_files(db, identity, command)
    return DataResponse(message=result["message"], data=RecordFilesData(**result["data"]))

@router.delete("/{milestone_id}/files", response_model=DataResponse[FilesDeleted])
def delete_files_of_milestone(
    milestone_id: int,
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    identity: Identity = Depends(get_current_identity),
):
    """
    Удалить все файлы этапа.
    """
    result = delete_milestone_files(db, storage, identity, milestone_id)
    return DataResponse(
        message=f"{len(result['deleted_keys'])} files deleted successfully",
        data=FilesDeleted(**result),
    )
