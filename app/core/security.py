# app/core/security.py

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Any, Dict
from jose import JWTError, jwt
from app.core.settings import settings

from fastapi.security import OAuth2PasswordBearer

# Настройки
SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.JWT_ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES


@dataclass(frozen=True)
class Identity:
    """
    Подтверждённый пользователь запроса. Передаётся явно в каждую операцию ядра.
    """
    user_id: int
    email: str


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None
) -> tuple[str, datetime]:
    """
    Генерирует access token (JWT) и возвращает (token, expire_time)
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt, expire

def verify_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Декодирует и валидирует access token.
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        if payload.get("type") != "access":
            return None
        return payload
    except JWTError:
        return None

# FastAPI bearer scheme (401 формирует get_current_identity)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)
