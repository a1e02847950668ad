# app/initial_data.py

import asyncio
import logging
from typing import Optional
from sqlalchemy.orm import Session
from app.database import SessionLocal, engine
from app.models.base import Base
from app.models.user import User
from app.core.security import create_access_token
from app.core.settings import settings

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("Delivery.InitialData")

def create_tables() -> None:
    # Регистрирует все модели в Base.metadata
    import app.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables are in place.")

async def create_initial_agency_user(db: Session) -> Optional[User]:
    """
    Создаёт первый аккаунт агентства (FIRST_AGENCY_EMAIL), если его ещё нет.
    """
    email = (settings.FIRST_AGENCY_EMAIL or "").strip().lower()
    if not email:
        logger.info("FIRST_AGENCY_EMAIL is not set. No action taken.")
        return None

    user = db.query(User).filter(User.email == email).first()
    if user:
        logger.info(f"Agency user '{email}' already exists. No action taken.")
        return user

    logger.info(f"Agency user '{email}' not found. Creating...")
    user = User(email=email, full_name=settings.FIRST_AGENCY_NAME, is_active=True)
    db.add(user)
    try:
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"An unexpected error occurred during agency user creation: {e}", exc_info=True)
        raise
    db.refresh(user)
    logger.info(f"Agency user '{email}' created successfully (id={user.id}).")
    return user

def issue_dev_token(user: User) -> str:
    token, expire = create_access_token({"sub": str(user.id), "email": user.email})
    logger.info(f"Development token for {user.email} (expires {expire.isoformat()}): {token}")
    return token

async def main() -> None:
    logger.info("Initializing initial data (tables, agency user)...")
    create_tables()
    db = SessionLocal()
    try:
        user = await create_initial_agency_user(db)
        if user is not None and settings.DEBUG:
            issue_dev_token(user)
    finally:
        db.close()
    logger.info("Finished initial data setup.")

if __name__ == "__main__":
    from dotenv import load_dotenv
    load_dotenv()

    asyncio.run(main())
