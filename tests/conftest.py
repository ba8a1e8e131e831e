"""
Shared fixtures: in-memory SQLite database, seeded users and a tutor profile,
session factory, and stand-ins for the payment and meeting collaborators.

Fixtures hand out ids rather than ORM instances. Service calls roll back on
failure, which expires loaded instances, and expired attributes cannot be
lazily reloaded on an async session.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("MEETING_PROVIDER", "static")

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from db import Base
from errors import DependencyFailure
from meetings.client import StaticMeetingProvider
from payments.gateway import PaymentGateway
from payments.models import RefundRequest
from reviews.models import Review  # noqa: F401
from sessions.models import SessionStatus, TutoringSession
from tutors.models import TutorProfile
from users.models import User

SESSION_DATE = date(2026, 3, 10)


@pytest.fixture
async def db():
    """In-memory SQLite session with every table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


async def _add_user(db: AsyncSession, full_name: str, role: str) -> uuid.UUID:
    user_id = uuid.uuid4()
    db.add(
        User(
            id=user_id,
            email=f"{user_id.hex[:8]}@example.com",
            hashed_password="not-a-real-hash",
            full_name=full_name,
            role=role,
        )
    )
    await db.commit()
    return user_id


@pytest.fixture
async def tutor_id(db) -> uuid.UUID:
    user_id = await _add_user(db, "Ana Tutor", "tutor")
    db.add(TutorProfile(user_id=user_id, public_handle=f"ana-{user_id.hex[:6]}", specialty="Math"))
    await db.commit()
    return user_id


@pytest.fixture
async def student_id(db) -> uuid.UUID:
    return await _add_user(db, "Bruno Student", "student")


@pytest.fixture
async def other_student_id(db) -> uuid.UUID:
    return await _add_user(db, "Carla Student", "student")


@pytest.fixture
def make_session(db, tutor_id, student_id):
    """Insert a session row directly, in any status."""

    async def _make(
        status: SessionStatus = SessionStatus.SCHEDULED,
        session_date: date = SESSION_DATE,
        slots=("14:00",),
        price: Decimal = Decimal("1500.00"),
        student: uuid.UUID | None = None,
        materials=None,
        meeting_urls=None,
    ) -> uuid.UUID:
        session_id = uuid.uuid4()
        db.add(
            TutoringSession(
                id=session_id,
                tutor_id=tutor_id,
                student_id=student or student_id,
                status=status.value,
                date=session_date,
                slots=list(slots),
                price=price,
                meeting_urls=list(meeting_urls or []),
                materials=list(materials or []),
            )
        )
        await db.commit()
        return session_id

    return _make


@pytest.fixture
def meetings() -> StaticMeetingProvider:
    return StaticMeetingProvider(base_url="https://meet.test")


class RejectingPaymentGateway(PaymentGateway):
    """Payment collaborator that refuses every refund request."""

    def __init__(self):
        self.calls = 0

    async def request_refund(self, db, session_id, amount, reason=None):
        self.calls += 1
        raise DependencyFailure("The refund request was rejected by the payment service")


@pytest.fixture
def rejecting_payments() -> RejectingPaymentGateway:
    return RejectingPaymentGateway()


@pytest.fixture
def count_refunds(db):
    async def _count(session_id: uuid.UUID | None = None) -> int:
        query = select(func.count(RefundRequest.id))
        if session_id is not None:
            query = query.where(RefundRequest.session_id == session_id)
        return (await db.execute(query)).scalar_one()

    return _count
