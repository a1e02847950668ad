#app/api/presign.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.security import Identity
from app.crud.upload import issue_presigned_upload
from app.dependencies import get_db, get_current_identity, get_storage
from app.schemas.response import DataResponse
from app.schemas.upload import PresignRequest, PresignData
from app.services.storage import ObjectStorage

router = APIRouter(prefix="/presign", tags=["Uploads"])

@router.post("", response_model=DataResponse[PresignData])
def create_presigned_url(
    data: PresignRequest,
    db: Session = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
    identity: Identity = Depends(get_current_identity),
):
    """
    Временная ссылка на прямую загрузку/скачивание файла этапа.
    """
    result = issue_presigned_upload(db, storage, identity, data)
    return DataResponse(data=PresignData(**result))
