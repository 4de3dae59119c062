"""Response envelope shared by every endpoint."""

from pydantic import BaseModel, Field


class MessageResponse(BaseModel):
    """Success envelope carrying only a message."""

    success: bool = Field(default=True, description="Always present; false only on errors")
    message: str


class ErrorResponse(BaseModel):
    """Error envelope produced by the exception handlers in app.main."""

    success: bool = False
    code: str = Field(..., description="Stable error code, e.g. validation_error")
    message: str
    error: str | None = Field(
        default=None,
        description="Underlying error detail; only set for server errors in dev",
    )
