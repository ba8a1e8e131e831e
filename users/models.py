from fastapi_users.db import SQLAlchemyBaseUserTableUUID
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from db import Base


class User(SQLAlchemyBaseUserTableUUID, Base):
    __tablename__ = "users"

    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    # "student" books sessions and writes reviews, "tutor" runs them
    role: Mapped[str] = mapped_column(String(20), default="student", nullable=False)
    photo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
