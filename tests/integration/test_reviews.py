"""
Review upsert and the tutor rating aggregate.
"""

import uuid

import pytest
from sqlalchemy import delete, func, select
from sqlalchemy.exc import OperationalError

from errors import DependencyFailure, InvalidTransition, NotFound, Unauthorized, ValidationError
from reviews import service
from reviews.models import Review
from sessions.models import SessionStatus
from tutors.models import TutorProfile


async def review_count(db) -> int:
    return (await db.execute(select(func.count(Review.id)))).scalar_one()


class TestSubmitReview:
    async def test_second_submission_updates_in_place(self, db, student_id, tutor_id, make_session):
        session_id = await make_session(status=SessionStatus.COMPLETED)

        first = await service.submit_review(db, student_id, session_id, 2, "Too fast")
        first_id = first.id
        second = await service.submit_review(db, student_id, session_id, 5, "Much better on review")

        assert await review_count(db) == 1
        assert second.id == first_id
        assert second.rating == 5
        assert second.comment == "Much better on review"
        assert await service.get_tutor_rating(db, tutor_id) == 5.0

    async def test_unknown_session(self, db, student_id):
        with pytest.raises(NotFound):
            await service.submit_review(db, student_id, uuid.uuid4(), 4)

    @pytest.mark.parametrize("status", [SessionStatus.SCHEDULED, SessionStatus.ONGOING, SessionStatus.CANCELED])
    async def test_only_completed_sessions_can_be_reviewed(self, db, student_id, make_session, status):
        session_id = await make_session(status=status)

        with pytest.raises(InvalidTransition):
            await service.submit_review(db, student_id, session_id, 4)

        assert await review_count(db) == 0

    async def test_status_is_checked_before_ownership(self, db, other_student_id, make_session):
        session_id = await make_session(status=SessionStatus.SCHEDULED)

        with pytest.raises(InvalidTransition):
            await service.submit_review(db, other_student_id, session_id, 4)

    async def test_only_the_sessions_student_can_review(self, db, other_student_id, make_session):
        session_id = await make_session(status=SessionStatus.COMPLETED)

        with pytest.raises(Unauthorized):
            await service.submit_review(db, other_student_id, session_id, 4)

        assert await review_count(db) == 0

    @pytest.mark.parametrize("rating", [0, 6, -1, 4.5, "5", True, None])
    async def test_bad_ratings_are_rejected_before_any_write(self, db, student_id, make_session, rating):
        session_id = await make_session(status=SessionStatus.COMPLETED)

        with pytest.raises(ValidationError):
            await service.submit_review(db, student_id, session_id, rating)

        assert await review_count(db) == 0

    async def test_review_is_not_kept_when_the_tutor_profile_is_gone(self, db, student_id, tutor_id, make_session):
        session_id = await make_session(status=SessionStatus.COMPLETED)
        await db.execute(delete(TutorProfile).where(TutorProfile.user_id == tutor_id))
        await db.commit()

        with pytest.raises(NotFound):
            await service.submit_review(db, student_id, session_id, 5, "Great")

        assert await review_count(db) == 0

    async def test_review_is_not_kept_when_the_rating_update_fails(
        self, db, student_id, tutor_id, make_session, monkeypatch
    ):
        session_id = await make_session(status=SessionStatus.COMPLETED)

        async def failing_recompute(db, tutor_id):
            raise OperationalError("UPDATE tutor_profiles", {}, Exception("database is locked"))

        monkeypatch.setattr(service, "recompute_tutor_rating", failing_recompute)

        with pytest.raises(DependencyFailure):
            await service.submit_review(db, student_id, session_id, 5, "Great")

        assert await review_count(db) == 0
        assert await service.get_tutor_rating(db, tutor_id) == 0.0


class TestTutorRating:
    async def test_mean_is_taken_over_reviews_not_sessions(
        self, db, tutor_id, student_id, other_student_id, make_session
    ):
        s1 = await make_session(status=SessionStatus.COMPLETED)
        s2 = await make_session(status=SessionStatus.COMPLETED)
        await make_session(status=SessionStatus.COMPLETED)

        # S1 carries two reviews (5 and 3), S2 one (4), S3 none
        db.add_all(
            [
                Review(id=uuid.uuid4(), student_id=student_id, session_id=s1, rating=5),
                Review(id=uuid.uuid4(), student_id=other_student_id, session_id=s1, rating=3),
                Review(id=uuid.uuid4(), student_id=student_id, session_id=s2, rating=4),
            ]
        )
        await db.flush()

        average = await service.recompute_tutor_rating(db, tutor_id)
        await db.commit()

        assert average == 4.0
        assert await service.get_tutor_rating(db, tutor_id) == 4.0

    async def test_rating_follows_submissions(self, db, tutor_id, student_id, make_session):
        s1 = await make_session(status=SessionStatus.COMPLETED)
        s2 = await make_session(status=SessionStatus.COMPLETED)

        await service.submit_review(db, student_id, s1, 5)
        await service.submit_review(db, student_id, s2, 2)
        assert await service.get_tutor_rating(db, tutor_id) == 3.5

        await service.submit_review(db, student_id, s2, 4)
        assert await service.get_tutor_rating(db, tutor_id) == 4.5

    async def test_tutor_without_reviews_has_zero(self, db, tutor_id):
        assert await service.get_tutor_rating(db, tutor_id) == 0.0
        assert await service.recompute_tutor_rating(db, tutor_id) == 0.0

    async def test_unknown_tutor(self, db):
        with pytest.raises(NotFound):
            await service.get_tutor_rating(db, uuid.uuid4())


class TestReviewsForTutor:
    async def test_listing_joins_session_and_student(self, db, tutor_id, student_id, make_session):
        session_id = await make_session(status=SessionStatus.COMPLETED)
        await service.submit_review(db, student_id, session_id, 5, "Great explanations")

        reviews = await service.get_reviews_for_tutor(db, tutor_id)

        assert len(reviews) == 1
        assert reviews[0]["session_id"] == session_id
        assert reviews[0]["rating"] == 5
        assert reviews[0]["student_name"] == "Bruno Student"
        assert reviews[0]["session_date"].isoformat() == "2026-03-10"

    async def test_unknown_tutor(self, db):
        with pytest.raises(NotFound):
            await service.get_reviews_for_tutor(db, uuid.uuid4())
