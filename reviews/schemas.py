import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, StrictInt


class ReviewSubmit(BaseModel):
    session_id: uuid.UUID
    rating: StrictInt = Field(..., ge=1, le=5)
    comment: str | None = Field(None, max_length=2000)


class ReviewRead(BaseModel):
    id: uuid.UUID
    session_id: uuid.UUID
    student_id: uuid.UUID
    rating: int
    comment: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TutorReviewRead(ReviewRead):
    # Joined display fields for review listings
    session_date: date
    session_title: str | None = None
    student_name: str
    student_photo_url: str | None = None


class TutorRatingRead(BaseModel):
    tutor_id: uuid.UUID
    rating: float
