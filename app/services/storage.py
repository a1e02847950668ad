# app/services/storage.py
"""
Объектное хранилище (S3-совместимое, MinIO) для файлов результатов этапов.

Клиент создаётся лениво. Регион задаётся явно, поэтому подпись presigned
ссылок не требует сетевых запросов к хранилищу.
"""
import logging
from datetime import timedelta
from functools import lru_cache
from typing import Iterable, List, Optional, Tuple

from minio import Minio
from minio.deleteobjects import DeleteObject
from minio.error import S3Error

from app.core.exceptions import StorageError
from app.core.settings import settings

logger = logging.getLogger("Delivery.Storage")


class ObjectStorage:
    """
    Обёртка над minio-клиентом: presigned PUT/GET и пакетное удаление.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        bucket: Optional[str] = None,
        region: Optional[str] = None,
        secure: Optional[bool] = None,
    ):
        self.endpoint = endpoint if endpoint is not None else settings.STORAGE_ENDPOINT
        self.access_key = access_key if access_key is not None else settings.STORAGE_ACCESS_KEY
        self.secret_key = secret_key if secret_key is not None else settings.STORAGE_SECRET_KEY
        self.bucket = bucket or settings.STORAGE_BUCKET
        self.region = region or settings.STORAGE_REGION
        self.secure = settings.STORAGE_SECURE if secure is None else secure
        self._client: Optional[Minio] = None

    @property
    def configured(self) -> bool:
        return bool(self.endpoint and self.access_key and self.secret_key)

    @property
    def client(self) -> Minio:
        """Get or create the MinIO client (lazy initialization)."""
        if not self.configured:
            raise StorageError("Object storage credentials are not configured")
        if self._client is None:
            self._client = Minio(
                endpoint=self.endpoint,
                access_key=self.access_key,
                secret_key=self.secret_key,
                secure=self.secure,
                region=self.region,
            )
            logger.info(f"MinIO client initialized (endpoint={self.endpoint}, secure={self.secure})")
        return self._client

    def presigned_put_url(self, key: str, expires_seconds: int) -> str:
        """
        Ссылка на прямую загрузку объекта клиентом.
        """
        try:
            url = self.client.presigned_put_object(
                bucket_name=self.bucket,
                object_name=key,
                expires=timedelta(seconds=expires_seconds),
            )
        except (S3Error, ValueError) as e:
            logger.error(f"Failed to presign PUT for {self.bucket}/{key}: {e}")
            raise StorageError("Failed to generate upload URL")
        logger.debug(f"Generated presigned PUT URL for {self.bucket}/{key}")
        return url

    def presigned_get_url(self, key: str, expires_seconds: int) -> str:
        """
        Ссылка на скачивание объекта.
        """
        try:
            url = self.client.presigned_get_object(
                bucket_name=self.bucket,
                object_name=key,
                expires=timedelta(seconds=expires_seconds),
            )
        except (S3Error, ValueError) as e:
            logger.error(f"Failed to presign GET for {self.bucket}/{key}: {e}")
            raise StorageError("Failed to generate download URL")
        logger.debug(f"Generated presigned GET URL for {self.bucket}/{key}")
        return url

    def delete_objects(self, keys: Iterable[str]) -> Tuple[List[str], List[str]]:
        """
        Удаляет объекты одним запросом. Возвращает (удалённые, неудалённые) ключи.
        """
        keys = list(dict.fromkeys(keys))
        if not keys:
            return [], []
        errors = self.client.remove_objects(
            bucket_name=self.bucket,
            delete_object_list=[DeleteObject(key) for key in keys],
        )
        # remove_objects ленивый: запрос уходит при итерации
        failed = []
        try:
            for error in errors:
                logger.warning(f"Failed to delete {self.bucket}/{error.name}: {error.message}")
                failed.append(error.name)
        except S3Error as e:
            logger.error(f"Batch delete in {self.bucket} failed: {e}")
            raise StorageError("Failed to delete objects")
        deleted = [key for key in keys if key not in failed]
        logger.info(f"Deleted {len(deleted)}/{len(keys)} objects from {self.bucket}")
        return deleted, failed


@lru_cache()
def get_storage() -> ObjectStorage:
    return ObjectStorage()
