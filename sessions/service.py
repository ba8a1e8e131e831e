"""Session lifecycle: booking, the status state machine, materials and meeting links.

    scheduled ──start──▶ ongoing ──complete──▶ completed
        │                   │
        └──────cancel───────┴──────────────▶ canceled

``completed`` and ``canceled`` are terminal. Every mutation of a session row
runs through ``_mutate_session``, which loads the row ``FOR UPDATE`` and relies
on the ``version`` column to catch concurrent writers. A writer that loses the
race is rolled back and replayed against the fresh row, so its guards see the
winner's state.
"""

import logging
import uuid
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Awaitable, Callable, TypeVar

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from config import settings
from errors import (
    DependencyFailure,
    GateNotOpen,
    InvalidTransition,
    NotFound,
    SessionServiceError,
    SlotUnavailable,
    Unauthorized,
    ValidationError,
)
from meetings.client import MeetingProvider, MeetingRoom, get_meeting_provider
from payments.gateway import PaymentGateway, get_payment_gateway
from sessions import materials as material_codec
from sessions.models import BookedSlot, SessionStatus, TutoringSession, utcnow
from sessions.time_gate import can_start, parse_slot, start_instant, time_until_start
from tutors.models import TutorProfile

logger = logging.getLogger(__name__)

# Actor id used by batch jobs (stale-session sweep) when they cancel sessions.
SYSTEM_ACTOR_ID = uuid.UUID(int=0)

T = TypeVar("T")


async def get_session(db: AsyncSession, session_id: uuid.UUID) -> TutoringSession:
    result = await db.execute(select(TutoringSession).where(TutoringSession.id == session_id))
    session = result.scalar_one_or_none()
    if not session:
        raise NotFound("Session not found")
    return session


async def get_session_for_participant(db: AsyncSession, session_id: uuid.UUID, user_id: uuid.UUID) -> TutoringSession:
    session = await get_session(db, session_id)
    if user_id not in (session.tutor_id, session.student_id):
        raise Unauthorized("You are not a participant of this session")
    return session


async def list_user_sessions(
    db: AsyncSession, user_id: uuid.UUID, status: SessionStatus | None = None
) -> list[TutoringSession]:
    """Sessions where the user is either the student or the tutor."""
    query = select(TutoringSession).where(
        or_(TutoringSession.student_id == user_id, TutoringSession.tutor_id == user_id)
    )
    if status is not None:
        query = query.where(TutoringSession.status == status.value)
    query = query.order_by(TutoringSession.date, TutoringSession.created_at)

    result = await db.execute(query)
    return list(result.scalars().all())


def _storage_failure(e: Exception) -> DependencyFailure:
    logger.error(f"Session storage error: {e}", exc_info=True)
    return DependencyFailure("Storage is temporarily unavailable")


async def _mutate_session(
    db: AsyncSession,
    session_id: uuid.UUID,
    operation: Callable[[TutoringSession], Awaitable[T]],
) -> T:
    """Run ``operation`` on the locked session row and commit, replaying lost races."""
    for attempt in range(1, settings.OPTIMISTIC_RETRIES + 1):
        try:
            result = await db.execute(
                select(TutoringSession)
                .where(TutoringSession.id == session_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            session = result.scalar_one_or_none()
            if not session:
                raise NotFound("Session not found")

            outcome = await operation(session)
            await db.commit()
            return outcome
        except StaleDataError:
            await db.rollback()
            logger.info("Session %s changed concurrently, replaying (attempt %d)", session_id, attempt)
        except SessionServiceError:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            raise _storage_failure(e) from e

    logger.warning("Giving up on session %s after %d concurrent updates", session_id, settings.OPTIMISTIC_RETRIES)
    raise DependencyFailure("The session is busy, please retry")


def _require_tutor(session: TutoringSession, actor_id: uuid.UUID) -> None:
    if session.tutor_id != actor_id:
        raise Unauthorized("Only the session's tutor can do this")


# ── Booking ──────────────────────────────────────────────────────────────────


def _validate_slots(slots: list[time]) -> list[time]:
    if not slots:
        raise ValidationError("At least one time slot is required")
    try:
        slots = [parse_slot(s) for s in slots]
    except (TypeError, ValueError):
        raise ValidationError("Time slots must be valid HH:MM times") from None
    for slot in slots:
        if slot.minute or slot.second or slot.microsecond:
            raise ValidationError("Time slots must start on the hour")
    for previous, current in zip(slots, slots[1:]):
        if current.hour <= previous.hour:
            raise ValidationError("Time slots must be in order and must not overlap")
    return slots


async def book_session(
    db: AsyncSession,
    student_id: uuid.UUID,
    tutor_id: uuid.UUID,
    session_date: date,
    slots: list[time],
    price: Decimal,
    title: str | None = None,
) -> TutoringSession:
    """Create a ``scheduled`` session and hold the tutor's slots for it."""
    if price is None or Decimal(price) < 0:
        raise ValidationError("Price must be a non-negative amount")
    slots = _validate_slots(slots)
    if student_id == tutor_id:
        raise ValidationError("Tutors cannot book their own sessions")

    tutor_result = await db.execute(select(TutorProfile).where(TutorProfile.user_id == tutor_id))
    if not tutor_result.scalar_one_or_none():
        raise NotFound("Tutor not found")

    session = TutoringSession(
        id=uuid.uuid4(),
        tutor_id=tutor_id,
        student_id=student_id,
        title=title,
        status=SessionStatus.SCHEDULED.value,
        date=session_date,
        slots=[s.strftime("%H:%M") for s in slots],
        price=Decimal(price),
        meeting_urls=[],
        materials=[],
    )
    try:
        db.add(session)
        await db.flush()
        for slot in slots:
            db.add(BookedSlot(tutor_id=tutor_id, session_id=session.id, date=session_date, start_time=slot))
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("Booking rejected, tutor %s already holds a slot on %s", tutor_id, session_date)
        raise SlotUnavailable()
    except SQLAlchemyError as e:
        await db.rollback()
        raise _storage_failure(e) from e

    logger.info("Session %s booked: tutor=%s student=%s date=%s slots=%s", session.id, tutor_id, student_id,
                session_date, session.slots)
    return session


# ── State machine ────────────────────────────────────────────────────────────


async def start_session(
    db: AsyncSession,
    session_id: uuid.UUID,
    actor_tutor_id: uuid.UUID,
    now: datetime | None = None,
    meetings: MeetingProvider | None = None,
) -> TutoringSession:
    """scheduled -> ongoing, once the time gate is open. Ensures a meeting room exists."""
    meetings = meetings or get_meeting_provider()
    # Created at most once per call; a replayed attempt reuses it
    room: MeetingRoom | None = None

    async def operation(session: TutoringSession) -> TutoringSession:
        nonlocal room
        _require_tutor(session, actor_tutor_id)
        if session.status != SessionStatus.SCHEDULED.value:
            raise InvalidTransition(f"A {session.status} session cannot be started")

        current = now or datetime.now(timezone.utc)
        if not can_start(session, current):
            logger.info("Start of session %s rejected, gate opens at %s", session.id,
                        start_instant(session.date, session.slots).isoformat())
            raise GateNotOpen()

        if not session.meeting_urls:
            if room is None:
                room = await meetings.create_meeting(
                    topic=session.title or "Tutoring Session",
                    start_time=start_instant(session.date, session.slots),
                    duration_minutes=60 * max(len(session.slots), 1),
                )
            session.meeting_urls = [room.join_url]
            logger.info("Meeting room attached to session %s", session.id)

        session.status = SessionStatus.ONGOING.value
        session.started_at = utcnow()
        return session

    session = await _mutate_session(db, session_id, operation)
    logger.info("Session %s started by tutor %s", session_id, actor_tutor_id)
    return session


async def complete_session(db: AsyncSession, session_id: uuid.UUID, actor_tutor_id: uuid.UUID) -> TutoringSession:
    """ongoing -> completed. Only the owning tutor may complete."""

    async def operation(session: TutoringSession) -> TutoringSession:
        _require_tutor(session, actor_tutor_id)
        if session.status != SessionStatus.ONGOING.value:
            raise InvalidTransition(f"A {session.status} session cannot be completed")

        session.status = SessionStatus.COMPLETED.value
        session.ended_at = utcnow()
        return session

    session = await _mutate_session(db, session_id, operation)
    logger.info("Session %s completed by tutor %s", session_id, actor_tutor_id)
    return session


async def cancel_session(
    db: AsyncSession,
    session_id: uuid.UUID,
    actor_id: uuid.UUID,
    reason: str | None = None,
    payments: PaymentGateway | None = None,
) -> TutoringSession:
    """scheduled/ongoing -> canceled.

    Requests a refund for the session price and releases the booked slots. The
    refund request, the slot release and the status change commit together; if
    the payment gateway rejects the request nothing is written.
    """
    payments = payments or get_payment_gateway()

    async def operation(session: TutoringSession) -> TutoringSession:
        if actor_id != SYSTEM_ACTOR_ID and actor_id not in (session.tutor_id, session.student_id):
            raise Unauthorized("Only the session's tutor or student can cancel it")
        if session.is_terminal:
            raise InvalidTransition(f"A {session.status} session cannot be canceled")

        session.status = SessionStatus.CANCELED.value
        session.cancel_reason = reason
        await payments.request_refund(db, session.id, session.price, reason)
        await db.execute(delete(BookedSlot).where(BookedSlot.session_id == session.id))
        return session

    session = await _mutate_session(db, session_id, operation)
    logger.info("Session %s canceled by %s (reason=%r)", session_id, actor_id, reason)
    return session


def start_eligibility(session: TutoringSession, now: datetime | None = None) -> dict:
    now = now or datetime.now(timezone.utc)
    remaining = time_until_start(session, now)
    return {
        "session_id": session.id,
        "status": session.status,
        "can_start": session.status == SessionStatus.SCHEDULED.value and can_start(session, now),
        "start_at": start_instant(session.date, session.slots),
        "seconds_until_start": remaining.total_seconds() if remaining is not None else None,
    }


# ── Materials ────────────────────────────────────────────────────────────────


async def add_material(db: AsyncSession, session_id: uuid.UUID, actor_tutor_id: uuid.UUID, material) -> TutoringSession:
    async def operation(session: TutoringSession) -> TutoringSession:
        _require_tutor(session, actor_tutor_id)
        session.materials = material_codec.append_material(session.materials, material)
        return session

    session = await _mutate_session(db, session_id, operation)
    logger.info("Material added to session %s (%d total)", session_id, len(session.materials))
    return session


async def remove_material(db: AsyncSession, session_id: uuid.UUID, actor_tutor_id: uuid.UUID, index: int) -> TutoringSession:
    async def operation(session: TutoringSession) -> TutoringSession:
        _require_tutor(session, actor_tutor_id)
        session.materials = material_codec.remove_material_at(session.materials, index)
        return session

    session = await _mutate_session(db, session_id, operation)
    logger.info("Material %d removed from session %s", index, session_id)
    return session


# ── Meeting links ────────────────────────────────────────────────────────────


async def add_meeting_url(db: AsyncSession, session_id: uuid.UUID, actor_tutor_id: uuid.UUID, url: str) -> TutoringSession:
    async def operation(session: TutoringSession) -> TutoringSession:
        _require_tutor(session, actor_tutor_id)
        if session.is_terminal:
            raise InvalidTransition(f"A {session.status} session cannot get new meeting links")
        if url not in session.meeting_urls:
            session.meeting_urls = [*session.meeting_urls, url]
        return session

    return await _mutate_session(db, session_id, operation)


async def get_host_url(
    db: AsyncSession,
    session_id: uuid.UUID,
    actor_tutor_id: uuid.UUID,
    meetings: MeetingProvider | None = None,
) -> str:
    meetings = meetings or get_meeting_provider()
    session = await get_session(db, session_id)
    _require_tutor(session, actor_tutor_id)
    if not session.meeting_urls:
        raise NotFound("This session has no meeting room yet")
    return await meetings.get_host_url(session.meeting_urls[-1])
