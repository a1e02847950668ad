# app/services/uploader.py
"""
Пакетная загрузка файлов этапа через presigned ссылки.

Для каждого файла запрашивается ссылка (POST /presign), байты уходят прямо
в хранилище (PUT), затем успешная часть пакета записывается одним вызовом
POST /milestones/{id}/files. Не больше ``max_concurrency`` файлов в волне.
Срок первой выданной ссылки задаёт дедлайн всего пакета: когда до него
остаётся меньше ``buffer_seconds``, оставшиеся файлы помечаются неудачными.
"""
import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, List, Optional

import httpx

from app.core.settings import settings

logger = logging.getLogger("Delivery.Uploader")

MB = 1024 * 1024


@dataclass
class LocalFile:
    name: str
    content: bytes
    type: str
    last_modified: Optional[int] = None

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class UploadedFile:
    key: str
    name: str
    file: LocalFile


@dataclass
class FailedFile:
    file: LocalFile
    error: str
    # ключ уже загруженного объекта, если не удалась только запись пакета
    key: Optional[str] = None


@dataclass
class UploadProgress:
    total: int
    completed: int
    status: str  # preparing | uploading | recording | completed | error
    failed_files: List[FailedFile] = field(default_factory=list)
    current_file: Optional[str] = None
    time_remaining: Optional[int] = None


@dataclass
class UploadResult:
    """
    Итог пакета: часть файлов может загрузиться, часть нет.
    """
    success: bool
    uploaded: List[UploadedFile]
    total_files: int
    successful: int
    failed: int
    failed_files: List[FailedFile]
    total_time: int  # мс
    error: Optional[str] = None


class UploadAborted(Exception):
    """Загрузку нельзя повторять: ссылка вот-вот истечёт."""


def _parse_expiry(value: str) -> datetime:
    expires_at = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at


def _error_message(error: Exception) -> str:
    if isinstance(error, httpx.HTTPStatusError):
        try:
            body = error.response.json()
        except ValueError:
            body = {}
        message = body.get("error") if isinstance(body, dict) else None
        return message or f"Request failed with status: {error.response.status_code}"
    if isinstance(error, httpx.RequestError):
        return f"Network error: {error}"
    return str(error) or error.__class__.__name__


class BatchUploader:
    def __init__(
        self,
        api_client: httpx.AsyncClient,
        storage_client: httpx.AsyncClient,
        max_retries: int = settings.UPLOAD_MAX_RETRIES,
        max_concurrency: int = settings.UPLOAD_MAX_CONCURRENCY,
        retry_delay: float = settings.UPLOAD_RETRY_DELAY,
        buffer_seconds: int = settings.UPLOAD_URL_BUFFER_SECONDS,
        max_file_size: int = settings.UPLOAD_MAX_FILE_SIZE,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api = api_client
        self.storage = storage_client
        self.max_retries = max_retries
        self.max_concurrency = max(1, max_concurrency)
        self.retry_delay = retry_delay
        self.buffer_seconds = buffer_seconds
        self.max_file_size = max_file_size
        self.clock = clock
        self.sleep = sleep
        self.deadline: Optional[datetime] = None

    # ==== Время ====

    def time_remaining(self) -> float:
        if self.deadline is None:
            return math.inf
        return math.floor((self.deadline - self.clock()).total_seconds())

    def is_time_critical(self) -> bool:
        return self.time_remaining() < self.buffer_seconds

    # ==== Шаги ====

    async def _presign(self, milestone_id: int, file: LocalFile) -> dict:
        response = await self.api.post(
            "/presign",
            json={
                "filename": file.name,
                "type": file.type,
                "size": file.size,
                "milestoneId": milestone_id,
                "mode": "write",
            },
        )
        response.raise_for_status()
        body = response.json()
        data = body.get("data") or {}
        if not body.get("success") or not data.get("url"):
            raise ValueError("Invalid presigned URL response")
        if self.deadline is None:
            self.deadline = _parse_expiry(data["expiresAt"])
        return data

    async def _put(self, url: str, file: LocalFile) -> None:
        remaining = self.time_remaining()
        if remaining < self.buffer_seconds:
            raise UploadAborted(
                f"Insufficient time remaining ({remaining}s) to upload file. Token expiring soon."
            )
        response = await self.storage.put(url, content=file.content)
        if response.status_code >= 400:
            logger.error(f"Storage upload of {file.name} failed: {response.status_code} {response.text[:200]}")
            raise ValueError(f"Storage upload failed with status: {response.status_code}")

    async def _with_retry(self, step, *args, time_sensitive: bool = False):
        attempt = 0
        while True:
            try:
                return await step(*args)
            except UploadAborted:
                raise
            except (httpx.HTTPError, ValueError) as e:
                if time_sensitive and self.is_time_critical():
                    raise
                if attempt >= self.max_retries:
                    raise
                attempt += 1
                logger.warning(f"{step.__name__} failed (attempt {attempt}/{self.max_retries}): {_error_message(e)}")
                await self.sleep(self.retry_delay * attempt)

    async def _process(self, milestone_id: int, file: LocalFile, failed: List[FailedFile]) -> Optional[UploadedFile]:
        try:
            if not file.name or file.size == 0:
                raise ValueError("Invalid file")
            if file.size > self.max_file_size:
                raise ValueError(f"File size exceeds {self.max_file_size // MB}MB limit")
            try:
                presigned = await self._with_retry(self._presign, milestone_id, file)
            except (httpx.HTTPError, ValueError) as e:
                raise ValueError(f"Failed to get presigned URL: {_error_message(e)}")
            await self._with_retry(self._put, presigned["url"], file, time_sensitive=True)
            return UploadedFile(key=presigned["key"], name=file.name, file=file)
        except (UploadAborted, httpx.HTTPError, ValueError) as e:
            message = _error_message(e)
            logger.error(f"Failed to upload {file.name}: {message}")
            failed.append(FailedFile(file=file, error=message))
            return None

    async def _record(self, milestone_id: int, uploaded: List[UploadedFile], submission_notes: Optional[str]) -> None:
        response = await self.api.post(
            f"/milestones/{milestone_id}/files",
            json={
                "milestoneId": milestone_id,
                "files": [
                    {
                        "key": item.key,
                        "name": item.name,
                        "size": item.file.size,
                        "type": item.file.type,
                        "lastModified": item.file.last_modified,
                    }
                    for item in uploaded
                ],
                "submissionNotes": submission_notes,
            },
        )
        response.raise_for_status()

    # ==== Пакет ====

    async def upload(
        self,
        milestone_id: int,
        files: List[LocalFile],
        submission_notes: Optional[str] = None,
        on_progress: Optional[Callable[[UploadProgress], None]] = None,
    ) -> UploadResult:
        started = time.monotonic()
        failed: List[FailedFile] = []
        uploaded: List[UploadedFile] = []
        self.deadline = None

        def report(status: str, current: Optional[str] = None):
            if on_progress:
                remaining = self.time_remaining()
                on_progress(UploadProgress(
                    total=len(files),
                    completed=len(uploaded),
                    status=status,
                    failed_files=list(failed),
                    current_file=current,
                    time_remaining=None if remaining == math.inf else max(0, int(remaining)),
                ))

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        if not milestone_id or not files:
            return UploadResult(
                success=False, uploaded=[], total_files=len(files), successful=0,
                failed=len(files), failed_files=failed, total_time=elapsed_ms(),
                error="Invalid input: milestoneId and files are required",
            )

        report("preparing")
        queue = list(files)
        while queue and not self.is_time_critical():
            wave, queue = queue[:self.max_concurrency], queue[self.max_concurrency:]
            report("uploading", wave[0].name)
            results = await asyncio.gather(*(self._process(milestone_id, f, failed) for f in wave))
            uploaded.extend(r for r in results if r is not None)

        if queue:
            remaining = self.time_remaining()
            logger.warning(f"Stopping uploads due to time constraints. {len(queue)} files remaining.")
            failed.extend(
                FailedFile(file=f, error=f"Upload cancelled - insufficient time remaining ({remaining}s)")
                for f in queue
            )

        if uploaded:
            report("recording")
            try:
                await self._record(milestone_id, uploaded, submission_notes)
            except httpx.HTTPError as e:
                message = _error_message(e)
                logger.error(f"Recording uploads for milestone {milestone_id} failed: {message}")
                failed.extend(
                    FailedFile(file=item.file, error=f"Failed to record upload: {message}", key=item.key)
                    for item in uploaded
                )
                report("error")
                return UploadResult(
                    success=False, uploaded=[], total_files=len(files), successful=0,
                    failed=len(failed), failed_files=failed, total_time=elapsed_ms(),
                    error=message,
                )

        report("completed")
        logger.info(f"Milestone {milestone_id}: uploaded {len(uploaded)}/{len(files)} files")
        return UploadResult(
            success=not failed,
            uploaded=uploaded,
            total_files=len(files),
            successful=len(uploaded),
            failed=len(failed),
            failed_files=failed,
            total_time=elapsed_ms(),
        )


async def upload_files_with_retry(
    base_url: str,
    token: str,
    milestone_id: int,
    files: List[LocalFile],
    submission_notes: Optional[str] = None,
    on_progress: Optional[Callable[[UploadProgress], None]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **options,
) -> UploadResult:
    """
    Загружает файлы этапа и записывает успешную часть пакета.
    """
    timeout = httpx.Timeout(settings.UPLOAD_TIMEOUT)
    async with httpx.AsyncClient(
        base_url=base_url,
        headers={"Authorization": f"Bearer {token}"},
        timeout=timeout,
        transport=transport,
    ) as api_client, httpx.AsyncClient(timeout=timeout, transport=transport) as storage_client:
        uploader = BatchUploader(api_client, storage_client, **options)
        return await uploader.upload(milestone_id, files, submission_notes, on_progress)


def estimate_upload_time(sizes: Iterable[int], network_speed_mbps: float = 5) -> int:
    """Оценка времени загрузки в секундах."""
    total_bits = sum(sizes) * 8
    return math.ceil(total_bits / (network_speed_mbps * MB))


def can_upload_within_time(
    sizes: Iterable[int],
    expires_in: int,
    network_speed_mbps: float = 5,
    buffer_seconds: int = settings.UPLOAD_URL_BUFFER_SECONDS,
) -> dict:
    estimated = estimate_upload_time(sizes, network_speed_mbps)
    margin = expires_in - estimated - buffer_seconds
    return {
        "feasible": margin > 0,
        "estimated_time": estimated,
        "time_remaining": expires_in,
        "margin": margin,
    }
