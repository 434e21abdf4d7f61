"""
Task API schemas (request models).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskWrite(BaseModel):
    """
    Body of POST /tasks and PUT /tasks/{id}.

    On PUT, optional fields left out of the body keep their stored values.
    """

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=500)
    description: str | None = Field(default=None, max_length=10_000)
    deadline: datetime
    completed: bool = False
    assigned_user: str | None = Field(default=None, alias="assignedUser")
    assigned_user_name: str | None = Field(default=None, alias="assignedUserName")

    @field_validator("deadline", mode="before")
    @classmethod
    def _accept_iso_dates(cls, value: Any) -> Any:
        # Accepts "2025-01-01" and a trailing "Z" in addition to pydantic's formats.
        if isinstance(value, str):
            raw = value.strip()
            try:
                return datetime.fromisoformat(raw.replace("Z", "+00:00"))
            except ValueError:
                return raw
        return value

    @field_validator("deadline")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
