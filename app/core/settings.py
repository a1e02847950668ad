#app/core/settings.py
# app/core/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
from pydantic import field_validator

class Settings(BaseSettings):
    """
    Основные переменные окружения и настройки приложения.
    Все значения берутся из .env.
    """
    # Database
    DATABASE_URL: str

    # JWT / Security
    SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # App meta
    ENV: str = "development"
    DEBUG: bool = True
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # Object storage (S3-compatible)
    STORAGE_ENDPOINT: str = "s3.amazonaws.com"
    STORAGE_ACCESS_KEY: str = ""
    STORAGE_SECRET_KEY: str = ""
    STORAGE_BUCKET: str = "deliverables"
    STORAGE_REGION: str = "us-east-1"
    STORAGE_SECURE: bool = True

    # Политика загрузки файлов
    UPLOAD_MAX_FILE_SIZE: int = 100 * 1024 * 1024
    UPLOAD_URL_BUFFER_SECONDS: int = 120
    UPLOAD_MAX_CONCURRENCY: int = 3
    UPLOAD_MAX_RETRIES: int = 3
    UPLOAD_RETRY_DELAY: float = 1.0
    UPLOAD_TIMEOUT: float = 30.0

    # Первый аккаунт агентства (app/initial_data.py)
    FIRST_AGENCY_EMAIL: str = ""
    FIRST_AGENCY_NAME: str = "Agency Admin"

    # Авто-сплит строкового списка ALLOWED_ORIGINS из .env
    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def split_origins(cls, v):
        if isinstance(v, str):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

settings = Settings()
