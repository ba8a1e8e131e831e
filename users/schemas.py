import uuid
from typing import Literal
from fastapi_users import schemas
from pydantic import ConfigDict


class UserRead(schemas.BaseUser[uuid.UUID]):
    full_name: str
    role: Literal["student", "tutor", "admin"]
    photo_url: str | None = None

    model_config = ConfigDict(from_attributes=True)


class UserCreate(schemas.BaseUserCreate):
    full_name: str
    role: Literal["student", "tutor"] = "student"
    photo_url: str | None = None


class UserUpdate(schemas.BaseUserUpdate):
    full_name: str | None = None
    photo_url: str | None = None
