#app/models/user.py
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, func
)
from app.models.base import Base

class User(Base):
    """
    User — аккаунт агентства или клиента. Личность подтверждает внешний провайдер авторизации.
    """
    __tablename__ = "users"

    id: int = Column(Integer, primary_key=True, index=True)
    email: str = Column(String(255), unique=True, nullable=False, index=True, doc="Email")
    full_name: str = Column(String(128), nullable=True, doc="Полное имя")
    is_active: bool = Column(Boolean, default=True, nullable=False, doc="Аккаунт активен")
    created_at: datetime = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, doc="Дата создания")
    updated_at: datetime = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False, doc="Дата обновления")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"
