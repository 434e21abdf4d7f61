"""
User API schemas (request models).
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class UserWrite(BaseModel):
    """
    Body of POST /users and PUT /users/{id}.

    `pendingTasks` is only honoured on PUT; new users start with an empty list.
    """

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=320)
    pending_tasks: list[str] | None = Field(default=None, alias="pendingTasks")
