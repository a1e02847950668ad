# app/crud/upload.py
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.exceptions import StateConflictError, UploadValidationError
from app.core.hooks import PostCommitHooks
from app.core.settings import settings
from app.core.security import Identity
from app.core.statuses import FILE_DELETABLE_STATUSES, ActivityType, MilestoneStatus
from app.crud.activity import log_activity
from app.crud.milestone import (
    UNAUTHORIZED_MILESTONE,
    ensure_no_sibling_in_progress,
    get_milestone_for,
    lock_milestone,
)
from app.crud.project import ensure_agency, ensure_participant
from app.database import transaction
from app.models.media_attachment import MediaAttachment
from app.models.milestone import Milestone
from app.schemas.upload import PLACEHOLDER_SUBMISSION_NOTES

logger = logging.getLogger("Delivery.Uploads")

MB = 1024 * 1024

ALLOWED_FILE_TYPES = (
    # Изображения
    "image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp", "image/svg+xml",
    # Документы
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    # Текст
    "text/plain", "text/csv",
    # Архивы
    "application/zip", "application/x-rar-compressed",
)

FILE_SIZE_LIMITS = {
    "image": 20 * MB,
    "document": 50 * MB,
    "other": 100 * MB,
}

READ_URL_EXPIRY = 900

# ==== Политика presigned ссылок ====

def size_limit_for(content_type: str) -> int:
    if content_type.startswith("image/"):
        return FILE_SIZE_LIMITS["image"]
    if content_type.startswith(("application/", "text/")):
        return FILE_SIZE_LIMITS["document"]
    return FILE_SIZE_LIMITS["other"]

def expiry_for(size: int, content_type: str) -> int:
    """
    Время жизни ссылки на запись: чем больше файл, тем короче.
    """
    if size > 50 * MB:
        return 300
    if size > 10 * MB:
        return 600
    if content_type.startswith("image/"):
        return 1800
    return 900

def sanitize_filename(filename: str) -> str:
    name = filename.replace("..", "").replace("/", "").replace("\\", "")
    return re.sub(r"[^a-zA-Z0-9._-]", "_", name)[:100]

def build_object_key(user_id: int, milestone_id: int, filename: str, timestamp_ms: Optional[int] = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"uploads/{user_id}/{milestone_id}/{timestamp_ms}-{sanitize_filename(filename)}"

def check_upload_policy(filename: str, content_type: str, size: int) -> None:
    if "/" in filename or "\\" in filename:
        raise UploadValidationError("Invalid filename", details={"fieldErrors": {"filename": ["Invalid filename"]}})
    if content_type not in ALLOWED_FILE_TYPES:
        raise UploadValidationError(
            "File type not allowed",
            details={"allowedTypes": list(ALLOWED_FILE_TYPES)},
        )
    limit = min(size_limit_for(content_type), settings.UPLOAD_MAX_FILE_SIZE)
    if size > limit:
        raise UploadValidationError(
            f"File too large for {content_type.split('/')[0]} files",
            details={
                "maxSize": f"{round(limit / MB)}MB",
                "currentSize": f"{round(size / MB)}MB",
            },
        )

def issue_presigned_upload(db: Session, storage, identity: Identity, request) -> Dict[str, Any]:
    """
    Временная ссылка на запись (mode=write) или чтение (mode=read) файла этапа. БД не меняется.
    """
    milestone = get_milestone_for(db, identity, request.milestone_id)

    if request.mode == "read":
        keys = milestone.attachment.public_ids if milestone.attachment else []
        if request.key not in (keys or []):
            raise UploadValidationError(
                "File does not belong to this milestone",
                details={"fieldErrors": {"key": ["Unknown file key"]}},
            )
        key = request.key
        expires_in = READ_URL_EXPIRY
        url = storage.presigned_get_url(key, expires_in)
    else:
        check_upload_policy(request.filename, request.type, request.size)
        key = build_object_key(identity.user_id, milestone.id, request.filename)
        expires_in = expiry_for(request.size, request.type)
        url = storage.presigned_put_url(key, expires_in)

    expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
    logger.info(f"Issued {request.mode} URL for milestone {milestone.id}: {key} (expires in {expires_in}s)")
    return {"url": url, "key": key, "expires_at": expires_at, "expires_in": expires_in}

# ==== Запись загруженных файлов ====

@dataclass(frozen=True)
class SubmitMilestoneViaUpload:
    """
    Команда: записать пакет загруженных файлов (или только заметки) в результаты этапа.

    Предусловия: вызывающий: агентство или клиент проекта; этап существует.
    Постусловия: ключи/имена дописаны в пакет этапа (пакет создаётся при первом
    вызове); если этап был in_progress, он становится submitted ровно один раз;
    в журнал добавлена одна запись. Всё в одной транзакции.
    """
    milestone_id: int
    files: List[Dict[str, Any]] = field(default_factory=list)
    submission_notes: str = PLACEHOLDER_SUBMISSION_NOTES

    @classmethod
    def from_request(cls, milestone_id: int, request) -> "SubmitMilestoneViaUpload":
        return cls(
            milestone_id=milestone_id,
            files=[f.model_dump() for f in request.files],
            submission_notes=request.submission_notes or PLACEHOLDER_SUBMISSION_NOTES,
        )

    @property
    def keys(self) -> List[str]:
        return [f["key"] for f in self.files]

    @property
    def names(self) -> List[str]:
        return [f["name"] for f in self.files]

def _describe_batch(title: str, files_processed: int, total_files: int, is_update: bool, submitted: bool):
    """
    (activity_type, описание для журнала, сообщение для ответа)
    """
    if submitted and files_processed:
        return (
            ActivityType.MILESTONE_SUBMITTED,
            f'Milestone submitted with {files_processed} files: "{title}"',
            f"Milestone submitted successfully with {files_processed} files",
        )
    if submitted:
        return (
            ActivityType.MILESTONE_SUBMITTED,
            f'Milestone submitted without files: "{title}"',
            "Milestone submitted successfully without files",
        )
    if files_processed and is_update:
        return (
            ActivityType.FILE_UPLOADED,
            f'{files_processed} files added to milestone "{title}" (Total: {total_files} files)',
            f"{files_processed} files added successfully (Total: {total_files} files)",
        )
    if files_processed:
        return (
            ActivityType.FILE_UPLOADED,
            f'{files_processed} files uploaded to milestone "{title}"',
            f"{files_processed} files uploaded successfully",
        )
    return (
        ActivityType.MILESTONE_UPDATED,
        f'Milestone updated: "{title}"',
        "Milestone updated successfully",
    )

def record_uploaded_files(db: Session, identity: Identity, command: SubmitMilestoneViaUpload) -> Dict[str, Any]:
    """
    Дописывает файлы в пакет этапа и при статусе in_progress переводит этап в submitted.
    """
    files_processed = len(command.files)
    with transaction(db, "upload recording"):
        milestone, project = lock_milestone(db, command.milestone_id)
        ensure_participant(project, identity, UNAUTHORIZED_MILESTONE)
        previous_status = milestone.status

        bundle = (
            db.query(MediaAttachment)
            .filter(MediaAttachment.milestone_id == milestone.id)
            .with_for_update()
            .first()
        )
        is_update = bundle is not None
        previous_file_count = bundle.file_count if bundle else 0
        if bundle is None:
            bundle = MediaAttachment(
                milestone_id=milestone.id,
                project_id=project.id,
                uploaded_by=identity.user_id,
                public_ids=command.keys,
                file_names=command.names,
                submission_notes=command.submission_notes,
            )
            db.add(bundle)
        else:
            # JSON-колонки: только новое значение, не мутация на месте
            if files_processed:
                bundle.public_ids = list(bundle.public_ids or []) + command.keys
                bundle.file_names = list(bundle.file_names or []) + command.names
            bundle.submission_notes = command.submission_notes
            bundle.uploaded_at = datetime.now(timezone.utc)
        db.flush()
        total_files = bundle.file_count

        status_updated = False
        if previous_status == MilestoneStatus.IN_PROGRESS.value:
            result = db.execute(
                update(Milestone)
                .where(
                    Milestone.id == milestone.id,
                    Milestone.status == MilestoneStatus.IN_PROGRESS.value,
                )
                .values(
                    status=MilestoneStatus.SUBMITTED.value,
                    submitted_at=datetime.now(timezone.utc),
                    submission_notes=command.submission_notes,
                )
            )
            status_updated = result.rowcount == 1
        new_status = MilestoneStatus.SUBMITTED.value if status_updated else previous_status

        activity_type, description, message = _describe_batch(
            milestone.title, files_processed, total_files, is_update, status_updated
        )
        metadata = {
            "project_name": project.name,
            "milestone_title": milestone.title,
            "submission_notes": command.submission_notes,
            "milestone_status_updated": status_updated,
            "previous_milestone_status": previous_status,
            "new_milestone_status": new_status,
            "has_files": files_processed > 0,
        }
        if files_processed:
            metadata.update({
                "media_attachment_id": bundle.id,
                "file_count": total_files,
                "files_processed": files_processed,
                "is_update": is_update,
                "current_batch": {
                    "file_count": files_processed,
                    "total_size": sum(f["size"] for f in command.files),
                    "files": [
                        {
                            "name": f["name"],
                            "key": f["key"],
                            "size": f["size"],
                            "type": f["type"],
                            "lastModified": f.get("last_modified"),
                        }
                        for f in command.files
                    ],
                },
                "all_files": [
                    {"key": key, "name": name}
                    for key, name in zip(bundle.public_ids, bundle.file_names)
                ],
            })
            if is_update:
                metadata["previous_file_count"] = previous_file_count

        log_activity(
            db,
            project_id=project.id,
            milestone_id=milestone.id,
            activity_type=activity_type,
            description=description,
            performed_by=identity.user_id,
            metadata=metadata,
        )
    logger.info(
        f"Recorded {files_processed} files for milestone {command.milestone_id} "
        f"(total={total_files}, status {previous_status} -> {new_status})"
    )
    return {
        "message": message,
        "data": {
            "files_processed": files_processed,
            "total_files": total_files,
            "is_update": is_update,
            "milestone_status_updated": status_updated,
            "previous_milestone_status": previous_status,
            "new_milestone_status": new_status,
        },
    }

# ==== Удаление файлов ====

def _remove_stored_objects(storage, keys: List[str], milestone_id: int) -> None:
    deleted, failed = storage.delete_objects(keys)
    if failed:
        logger.warning(f"Milestone {milestone_id}: {len(failed)} storage objects were not deleted: {failed}")

def delete_milestone_files(db: Session, storage, identity: Identity, milestone_id: int) -> Dict[str, Any]:
    """
    Удаляет пакет файлов этапа. submitted возвращается в in_progress; объекты хранилища удаляются после commit.
    """
    hooks = PostCommitHooks()
    with transaction(db, "milestone files deletion"):
        milestone, project = lock_milestone(db, milestone_id)
        ensure_agency(project, identity, "Unauthorized: You cannot delete these attachments")

        bundle = (
            db.query(MediaAttachment)
            .filter(MediaAttachment.milestone_id == milestone.id)
            .with_for_update()
            .first()
        )
        if bundle is None:
            return {"deleted_keys": [], "deleted_attachment_ids": [], "milestone_status": milestone.status}

        if milestone.status not in FILE_DELETABLE_STATUSES:
            raise StateConflictError(
                f"Cannot delete files of a milestone in status '{milestone.status}'",
                reason="files_locked",
                details={
                    "current_status": milestone.status,
                    "allowed_statuses": list(FILE_DELETABLE_STATUSES),
                },
            )

        keys = list(dict.fromkeys(bundle.public_ids or []))
        attachment_id = bundle.id
        previous_status = milestone.status

        if previous_status == MilestoneStatus.SUBMITTED.value:
            ensure_no_sibling_in_progress(db, milestone)
            db.execute(
                update(Milestone)
                .where(
                    Milestone.id == milestone.id,
                    Milestone.status == MilestoneStatus.SUBMITTED.value,
                )
                .values(status=MilestoneStatus.IN_PROGRESS.value, submitted_at=None)
            )

        db.delete(bundle)
        db.flush()

        log_activity(
            db,
            project_id=project.id,
            milestone_id=milestone.id,
            activity_type=ActivityType.FILES_DELETED,
            description=f'{len(keys)} files deleted from milestone "{milestone.title}"',
            performed_by=identity.user_id,
            metadata={
                "deleted_keys": keys,
                "media_attachment_id": attachment_id,
                "previous_milestone_status": previous_status,
                "new_milestone_status": milestone.status,
            },
        )
        if keys:
            hooks.add("delete storage objects", _remove_stored_objects, storage, keys, milestone.id)
    hooks.run()
    logger.info(f"Deleted {len(keys)} files from milestone {milestone_id} ({previous_status} -> {milestone.status})")
    return {
        "deleted_keys": keys,
        "deleted_attachment_ids": [attachment_id],
        "milestone_status": milestone.status,
    }
