import logging
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src.config.database import async_session_manager

logger = logging.getLogger(__name__)

router = APIRouter()


class HealthCheckResponse(BaseModel):
    status: str
    database: str
    version: str = "0.1.0"


async def database_ping() -> bool:
    try:
        async with async_session_manager(auto_commit=False) as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        logger.exception("Database health check failed")
        return False
    return True


def get_database_ping() -> Callable[[], Awaitable[bool]]:
    """Dependency to get the database ping."""
    return database_ping


@router.get("/", response_model=HealthCheckResponse)
async def health_check(
    ping: Callable[[], Awaitable[bool]] = Depends(get_database_ping),
) -> HealthCheckResponse:
    """
    Health check endpoint to verify the API is running.
    The sweep and the handlers need the database, so it is reported too.
    """
    if await ping():
        return HealthCheckResponse(status="healthy", database="ok")
    return HealthCheckResponse(status="degraded", database="unreachable")
