# app/database.py

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, scoped_session
from app.core.settings import settings
from app.core.exceptions import BaseAppException, UpstreamError

logger = logging.getLogger("Delivery.Database")

# Создаем движок подключения к БД
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    future=True,
)

# Фабрика сессий (scoped_session для потокобезопасности)
SessionLocal = scoped_session(
    sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False,
    )
)

@contextmanager
def transaction(db: Session, action: str = "operation") -> Iterator[Session]:
    """
    Одна транзакция на операцию: commit при успехе, rollback при любой ошибке.
    Ошибки SQLAlchemy превращаются в UpstreamError.
    """
    try:
        yield db
        db.commit()
    except BaseAppException:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error during {action}: {e}", exc_info=True)
        raise UpstreamError(f"Database error during {action}.")
    except Exception:
        db.rollback()
        raise
