# app/core/exceptions.py
from typing import Any, Optional


class BaseAppException(Exception):
    """Базовый класс для всех кастомных исключений приложения."""
    status_code: int = 500

    def __init__(self, message: str = "App exception", details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"success": False, "error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body

# ==== Валидация ====

class ValidationError(BaseAppException):
    """Некорректные или отсутствующие поля запроса."""
    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Any] = None):
        super().__init__(message, details)

class UploadValidationError(ValidationError):
    """Файл не проходит политику загрузки (тип, размер, имя)."""
    def __init__(self, message: str = "Upload validation error", details: Optional[Any] = None):
        super().__init__(message, details)

# ==== Авторизация ====

class AuthenticationError(BaseAppException):
    """Нет подтверждённой личности."""
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)

class AuthorizationError(BaseAppException):
    """Личность подтверждена, но прав на проект/этап нет."""
    status_code = 403

    def __init__(self, message: str = "Unauthorized access"):
        super().__init__(message)

# ==== NotFound ====

class NotFoundError(BaseAppException):
    """Ошибка отсутствия ресурса."""
    status_code = 404

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message)

class ProjectNotFound(NotFoundError):
    """Ошибка: проект не найден."""
    def __init__(self, message: str = "Project not found"):
        super().__init__(message)

class MilestoneNotFound(NotFoundError):
    """Ошибка: этап не найден."""
    def __init__(self, message: str = "Milestone not found"):
        super().__init__(message)

# ==== Конфликты состояния ====

class StateConflictError(BaseAppException):
    """
    Переход недопустим при текущем статусе.
    reason: машиночитаемая причина; details: конфликтующие данные.
    """
    status_code = 400

    def __init__(self, message: str, reason: str, details: Optional[Any] = None, status_code: Optional[int] = None):
        super().__init__(message, details)
        self.reason = reason
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["reason"] = self.reason
        return body

# ==== Внешние зависимости ====

class UpstreamError(BaseAppException):
    """База данных или хранилище недоступны."""
    status_code = 500

    def __init__(self, message: str = "Upstream service error"):
        super().__init__(message)

class StorageError(UpstreamError):
    """Ошибка объектного хранилища."""
    def __init__(self, message: str = "Object storage error"):
        super().__init__(message)
