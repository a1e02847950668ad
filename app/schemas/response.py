#app/schemas/response.py
from pydantic import BaseModel, Field
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")

class ErrorResponse(BaseModel):
    """
    ErrorResponse — стандартная структура для ошибки.
    """
    success: bool = Field(False, description="Всегда false")
    error: str = Field(..., examples=["Milestone not found"], description="Сообщение об ошибке")
    reason: Optional[str] = Field(None, examples=["sibling_in_progress"], description="Код причины (machine-readable)")
    details: Optional[Any] = Field(None, description="Дополнительные детали")

class SuccessResponse(BaseModel):
    """
    SuccessResponse — универсальный ответ с результатом выполнения операции.
    """
    success: bool = Field(True, description="Операция выполнена")
    message: Optional[str] = Field(None, examples=["Operation successful"], description="Сообщение для пользователя")
    data: Any = Field(None, description="Результат запроса")

class DataResponse(BaseModel, Generic[T]):
    """
    DataResponse — типизированный ответ {success, message, data}.
    """
    success: bool = True
    message: Optional[str] = None
    data: T
