#app/api/review.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from app.schemas.review import ReviewCreate, ReviewRead
from app.schemas.response import DataResponse
from app.crud.review import submit_review
from app.core.security import Identity
from app.dependencies import get_db, get_current_identity

router = APIRouter(prefix="/reviews", tags=["Reviews"])

@router.post("/", response_model=DataResponse[ReviewRead], status_code=status.HTTP_201_CREATED)
def create_review(
    data: ReviewCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity)
):
    """
    Оставить отзыв о проекте или этапе (только клиент проекта).
    """
    review = submit_review(db, identity, data.model_dump())
    return DataResponse(message="Review submitted successfully", data=ReviewRead.model_validate(review))
