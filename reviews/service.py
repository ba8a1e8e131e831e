"""Review upsert and the tutor rating aggregate.

A student may leave one review per completed session; submitting again edits
that review. Every submission recomputes the tutor's mean rating from scratch
over all reviews of all the tutor's sessions, inside the same transaction as
the review write, so the stored rating never disagrees with committed reviews.
"""

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import DependencyFailure, InvalidTransition, NotFound, SessionServiceError, Unauthorized, ValidationError
from reviews.models import Review
from sessions.models import SessionStatus, TutoringSession
from tutors.models import TutorProfile
from users.models import User

logger = logging.getLogger(__name__)


def validate_rating(rating) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be a whole number between 1 and 5")
    return rating


async def recompute_tutor_rating(db: AsyncSession, tutor_id: uuid.UUID) -> float:
    """Recompute and store the tutor's mean rating. Flushes, does not commit.

    The tutor row is locked first so two submissions for the same tutor
    serialize instead of overwriting each other's result.
    """
    tutor_result = await db.execute(
        select(TutorProfile).where(TutorProfile.user_id == tutor_id).with_for_update()
    )
    tutor = tutor_result.scalar_one_or_none()
    if not tutor:
        raise NotFound("Tutor not found")

    # divide by the number of reviews, not the number of sessions
    totals = await db.execute(
        select(func.count(Review.id), func.coalesce(func.sum(Review.rating), 0))
        .join(TutoringSession, Review.session_id == TutoringSession.id)
        .where(TutoringSession.tutor_id == tutor_id)
    )
    review_count, rating_sum = totals.one()
    average = float(rating_sum) / review_count if review_count else 0.0

    tutor.rating = average
    await db.flush()
    logger.info("Tutor %s rating recomputed: %.3f over %d reviews", tutor_id, average, review_count)
    return average


async def _upsert_review(
    db: AsyncSession, student_id: uuid.UUID, session_id: uuid.UUID, rating: int, comment: str | None
) -> Review:
    session_result = await db.execute(select(TutoringSession).where(TutoringSession.id == session_id))
    session = session_result.scalar_one_or_none()
    if not session:
        raise NotFound("Session not found")
    if session.status != SessionStatus.COMPLETED.value:
        raise InvalidTransition("Only completed sessions can be reviewed")
    if session.student_id != student_id:
        raise Unauthorized("You can only review your own sessions")

    existing = await db.execute(
        select(Review).where(Review.student_id == student_id, Review.session_id == session_id)
    )
    review = existing.scalar_one_or_none()
    if review:
        review.rating = rating
        review.comment = comment
    else:
        review = Review(id=uuid.uuid4(), student_id=student_id, session_id=session_id, rating=rating, comment=comment)
        db.add(review)
    await db.flush()

    await recompute_tutor_rating(db, session.tutor_id)
    await db.commit()
    return review


async def submit_review(
    db: AsyncSession,
    student_id: uuid.UUID,
    session_id: uuid.UUID,
    rating: int,
    comment: str | None = None,
) -> Review:
    """Create or update the student's review of a completed session."""
    validate_rating(rating)

    # A concurrent first submission for the same pair can win the insert; the
    # loser retries once and then finds the row to update.
    for attempt in range(2):
        try:
            review = await _upsert_review(db, student_id, session_id, rating, comment)
        except IntegrityError as e:
            await db.rollback()
            if attempt == 0:
                logger.info("Concurrent review for session %s by %s, retrying as update", session_id, student_id)
                continue
            logger.error(f"Review upsert failed: {e}", exc_info=True)
            raise DependencyFailure("Storage is temporarily unavailable") from e
        except SessionServiceError:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Review upsert failed: {e}", exc_info=True)
            raise DependencyFailure("Storage is temporarily unavailable") from e

        logger.info("Review %s saved for session %s (rating=%d)", review.id, session_id, rating)
        return review


async def get_tutor_rating(db: AsyncSession, tutor_id: uuid.UUID) -> float:
    """Stored aggregate only; never recomputes."""
    result = await db.execute(select(TutorProfile.rating).where(TutorProfile.user_id == tutor_id))
    rating = result.scalar_one_or_none()
    if rating is None:
        raise NotFound("Tutor not found")
    return rating


async def get_reviews_for_tutor(db: AsyncSession, tutor_id: uuid.UUID) -> list[dict]:
    tutor_result = await db.execute(select(TutorProfile.user_id).where(TutorProfile.user_id == tutor_id))
    if tutor_result.scalar_one_or_none() is None:
        raise NotFound("Tutor not found")

    result = await db.execute(
        select(Review, TutoringSession.date, TutoringSession.title, User.full_name, User.photo_url)
        .join(TutoringSession, Review.session_id == TutoringSession.id)
        .join(User, Review.student_id == User.id)
        .where(TutoringSession.tutor_id == tutor_id)
        .order_by(Review.updated_at.desc())
    )

    return [
        {
            "id": review.id,
            "session_id": review.session_id,
            "student_id": review.student_id,
            "rating": review.rating,
            "comment": review.comment,
            "created_at": review.created_at,
            "updated_at": review.updated_at,
            "session_date": session_date,
            "session_title": title,
            "student_name": full_name,
            "student_photo_url": photo_url,
        }
        for review, session_date, title, full_name, photo_url in result.all()
    ]
