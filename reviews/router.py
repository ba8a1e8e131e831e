from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_async_session
from reviews import service
from reviews.schemas import ReviewRead, ReviewSubmit
from users.auth import current_active_user
from users.models import User

router = APIRouter()


@router.put("/", response_model=ReviewRead)
async def submit_review(
    review_data: ReviewSubmit,
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_async_session),
):
    # Creates the review on first submission, edits it afterwards
    return await service.submit_review(
        session,
        student_id=user.id,
        session_id=review_data.session_id,
        rating=review_data.rating,
        comment=review_data.comment,
    )
