"""Admin endpoint models."""

from datetime import datetime

from pydantic import BaseModel, Field


class ReaperRunRequest(BaseModel):
    now: datetime | None = Field(default=None, description="Reap as of this instant; defaults to now")
    limit: int | None = Field(default=None, ge=1, le=1000)


class ReaperRunResponse(BaseModel):
    checked: int
    cancelled: list[str]
    cancelled_count: int
    released_assignments: int
    errors: dict[str, str]
