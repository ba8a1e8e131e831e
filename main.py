"""Tutoring sessions API.

Booking, the session lifecycle (start, complete, cancel), session materials,
reviews and tutor ratings.
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, APIRouter, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from db import engine, Base
from errors import SessionServiceError
from users.auth import auth_backend, fastapi_users
from users.schemas import UserRead, UserCreate, UserUpdate
from tutors.router import router as tutors_router
from sessions.router import router as sessions_router
from reviews.router import router as reviews_router

# Register every table on Base.metadata before create_all
import payments.models  # noqa: F401
import reviews.models  # noqa: F401
import sessions.models  # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting tutoring sessions API...")
    # Not needed if you setup a migration system like Alembic
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()
    logger.info("Tutoring sessions API stopped")


app = FastAPI(title="Tutoring Sessions API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.ALLOWED_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    duration_ms = (time.time() - start_time) * 1000
    logger.info(f"{request.method} {request.url.path} - Status: {response.status_code} - Duration: {duration_ms:.2f}ms")
    return response


@app.exception_handler(SessionServiceError)
async def session_service_error_handler(request: Request, exc: SessionServiceError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": exc.code, "message": exc.message}},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": {"code": "INTERNAL_ERROR", "message": "An internal server error occurred"}},
    )


# Main API Router
api_router = APIRouter(prefix="/api/v1")

# Auth Routes
api_router.include_router(
    fastapi_users.get_auth_router(auth_backend),
    prefix="/auth/jwt",
    tags=["auth"],
)

api_router.include_router(
    fastapi_users.get_register_router(UserRead, UserCreate),
    prefix="/auth",
    tags=["auth"],
)

api_router.include_router(
    fastapi_users.get_users_router(UserRead, UserUpdate),
    prefix="/users",
    tags=["users"],
)

# Domain Routes
api_router.include_router(tutors_router, prefix="/tutors", tags=["tutors"])
api_router.include_router(sessions_router, prefix="/sessions", tags=["sessions"])
api_router.include_router(reviews_router, prefix="/reviews", tags=["reviews"])

# Mount the API router to the main app
app.include_router(api_router)


@app.get("/")
def main():
    return {"message": "Tutoring sessions API"}
