# app/dependencies.py

from typing import Generator, Optional
from fastapi import Depends
from sqlalchemy.orm import Session
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.security import Identity, oauth2_scheme, verify_access_token
from app.models.user import User
from app.database import SessionLocal
from app.services.storage import ObjectStorage, get_storage as get_object_storage

def get_db() -> Generator[Session, None, None]:
    """
    Создает и возвращает сессию базы данных, гарантирует закрытие после использования.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_current_identity(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> Identity:
    """
    Декодирует JWT-токен и возвращает подтверждённую личность (user_id, email).
    """
    if not token:
        raise AuthenticationError()
    payload = verify_access_token(token)
    if payload is None:
        raise AuthenticationError()
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise AuthenticationError()

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise AuthenticationError()
    if not user.is_active:
        raise AuthorizationError("Inactive user")
    return Identity(user_id=user.id, email=user.email)

def get_storage() -> ObjectStorage:
    """
    Клиент объектного хранилища (подменяется в тестах).
    """
    return get_object_storage()
