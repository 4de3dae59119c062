"""Schema for the health check response."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    success: bool = True
    status: Literal["ok"] = "ok"
    message: str = Field(description="Human-readable liveness message")
    environment: str = Field(description="APP_ENV of the running process (dev or prod)")
    database: Literal["connected", "disconnected"] = Field(
        description="Result of a SELECT 1 against the configured database",
    )
    timestamp: datetime
