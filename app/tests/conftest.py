import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
import os
from datetime import timedelta
from typing import Generator, List

# Переменные окружения должны быть заданы до импорта settings и приложения
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "testsecretkey"
os.environ["STORAGE_ENDPOINT"] = "localhost:9000"
os.environ["STORAGE_ACCESS_KEY"] = "testaccesskey"
os.environ["STORAGE_SECRET_KEY"] = "testsecretaccesskey"
os.environ["STORAGE_SECURE"] = "false"

# Модели регистрируются в Base.metadata через app/models/__init__.py
import app.models
from app.models.base import Base
from app.models.user import User
from app.models.project import Project
from app.models.milestone import Milestone

from app.core.settings import settings as app_settings
from app.main import app

engine = create_engine(
    app_settings.DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

from app.dependencies import get_db, get_storage
from app.core import security
from app.core.security import Identity

AGENCY_EMAIL = "agency@example.com"
CLIENT_EMAIL = "client@example.com"
OUTSIDER_EMAIL = "outsider@example.com"


class FakeStorage:
    """
    Хранилище в памяти: presigned ссылки детерминированы, удаления запоминаются.
    """

    def __init__(self):
        self.bucket = "deliverables"
        self.deleted: List[str] = []
        self.fail_on_delete = False

    def presigned_put_url(self, key: str, expires_seconds: int) -> str:
        return f"https://storage.test/{self.bucket}/{key}?X-Amz-Expires={expires_seconds}&method=PUT"

    def presigned_get_url(self, key: str, expires_seconds: int) -> str:
        return f"https://storage.test/{self.bucket}/{key}?X-Amz-Expires={expires_seconds}&method=GET"

    def delete_objects(self, keys):
        if self.fail_on_delete:
            raise RuntimeError("storage unavailable")
        keys = list(keys)
        self.deleted.extend(keys)
        return keys, []


@pytest.fixture(scope="function", autouse=True)
def create_test_tables():
    """
    Чистая схема на каждый тест: операции ядра делают настоящие commit/rollback.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    session = TestingSessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(scope="function")
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture(scope="function")
def client(db: Session, storage: FakeStorage) -> Generator[TestClient, None, None]:
    """
    TestClient с тестовой сессией БД и хранилищем в памяти.
    """
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _create_user(db: Session, email: str, full_name: str) -> User:
    user = User(email=email, full_name=full_name, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(scope="function")
def agency_user(db: Session) -> User:
    return _create_user(db, AGENCY_EMAIL, "Studio Owner")


@pytest.fixture(scope="function")
def client_user(db: Session) -> User:
    return _create_user(db, CLIENT_EMAIL, "Jane Client")


@pytest.fixture(scope="function")
def outsider_user(db: Session) -> User:
    return _create_user(db, OUTSIDER_EMAIL, "Somebody Else")


@pytest.fixture(scope="function")
def agency(agency_user: User) -> Identity:
    return Identity(user_id=agency_user.id, email=agency_user.email)


@pytest.fixture(scope="function")
def client_identity(client_user: User) -> Identity:
    return Identity(user_id=client_user.id, email=client_user.email)


@pytest.fixture(scope="function")
def outsider(outsider_user: User) -> Identity:
    return Identity(user_id=outsider_user.id, email=outsider_user.email)


def token_headers_for(user: User) -> dict:
    token, _ = security.create_access_token(
        data={"sub": str(user.id), "email": user.email},
        expires_delta=timedelta(minutes=app_settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def agency_headers(agency_user: User) -> dict:
    return token_headers_for(agency_user)


@pytest.fixture(scope="function")
def client_headers(client_user: User) -> dict:
    return token_headers_for(client_user)


@pytest.fixture(scope="function")
def outsider_headers(outsider_user: User) -> dict:
    return token_headers_for(outsider_user)


@pytest.fixture(scope="function")
def make_project(db: Session, agency_user: User, client_user: User):
    """
    Фабрика проекта с этапами (все not_started). Цена проекта = сумма этапов.
    """
    def _make(status: str = "pending", milestones: int = 1, milestone_price: float = 500.0, **milestone_fields) -> Project:
        project = Project(
            name="Landing Redesign",
            description="Marketing site rebuild",
            project_type="Web Development",
            status=status,
            client_name="Jane Client",
            client_email=CLIENT_EMAIL,
            project_price=milestone_price * milestones,
            project_duration_days=30,
            agency_id=agency_user.id,
        )
        db.add(project)
        db.flush()
        fields = {"free_revisions": 1, "revision_rate": 50.0, "duration_days": 7}
        fields.update(milestone_fields)
        for position in range(1, milestones + 1):
            db.add(Milestone(
                project_id=project.id,
                title=f"Milestone {position}",
                description="",
                status="not_started",
                position=position,
                milestone_price=milestone_price,
                used_revisions=0,
                **fields,
            ))
        db.commit()
        db.refresh(project)
        return project
    return _make

