"""Liveness endpoint; also reports whether the database answers."""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import check_db_connected, get_db
from app.schemas.health import HealthResponse

router = APIRouter()


@router.get("", response_model=HealthResponse)
def get_health(db: Annotated[Session, Depends(get_db)]) -> HealthResponse:
    """Always 200 while the process serves requests; `database` says whether SELECT 1 worked."""
    return HealthResponse(
        message="Taskledger API is running",
        environment=settings.APP_ENV,
        database="connected" if check_db_connected(db) else "disconnected",
        timestamp=datetime.now(UTC),
    )
