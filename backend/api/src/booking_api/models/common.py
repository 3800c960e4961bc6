"""Shared API response models."""

from pydantic import BaseModel, Field

# Re-export the standard error body for route ``responses=`` declarations
from booking_engine.models import ErrorResponse

__all__ = ["ErrorResponse", "PingResponse"]


class PingResponse(BaseModel):
    status: str = Field(default="ok", examples=["ok"])
    timestamp: str
    service: str = "booking-api"
