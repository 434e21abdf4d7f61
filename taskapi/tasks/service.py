"""
Task business logic.

Each mutating call runs in one DB transaction: input is validated first,
then the task row is written, then the assignment hooks update the user's
pending list. An HTTPException anywhere rolls the whole request back.
"""

from __future__ import annotations

import logging
import os

from fastapi import HTTPException, status

from taskapi.assignments import service as assignments
from taskapi.core import db, querying

from . import repository, schemas

DEFAULT_TASK_LIMIT = 100

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def default_task_limit() -> int | None:
    """
    Limit applied to GET /tasks when the request has none. 0 or less disables it.
    """
    value = _env_int("DEFAULT_TASK_LIMIT", DEFAULT_TASK_LIMIT)
    return value if value > 0 else None


def _to_document(row: dict) -> dict:
    return querying.row_to_document(repository.TASKS, row)


def _bad_request(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")


async def create_task(payload: schemas.TaskWrite) -> dict:
    async with db.transaction():
        try:
            assignment = await assignments.resolve_assignment(payload.assigned_user, payload.assigned_user_name)
        except assignments.AssignmentError as exc:
            raise _bad_request(exc) from exc

        row = await repository.insert_task(
            name=payload.name,
            description=payload.description,
            deadline=payload.deadline,
            completed=payload.completed,
            assigned_user=assignment.user_id,
            assigned_user_name=assignment.user_name,
        )
        try:
            await assignments.on_task_create(row)
        except assignments.AssignmentError as exc:
            raise _bad_request(exc) from exc

    logger.info("task_created task_id=%s assigned_user=%s", row["id"], row["assigned_user"])
    return _to_document(row)


async def list_tasks(
    *,
    where: str | None = None,
    sort: str | None = None,
    select: str | None = None,
    skip: str | None = None,
    limit: str | None = None,
    count: str | None = None,
) -> list[dict] | int:
    try:
        query = querying.build_query(
            repository.TASKS,
            where=where,
            sort=sort,
            select=select,
            skip=skip,
            limit=limit,
            count=count,
            default_limit=default_task_limit(),
        )
    except querying.QueryParseError as exc:
        raise _bad_request(exc) from exc

    if query.count:
        return await repository.count_tasks(query)
    rows = await repository.list_tasks(query)
    return [_to_document(row) for row in rows]


async def get_task(task_id: str, *, select: str | None = None) -> dict:
    try:
        projection = querying.parse_projection(
            repository.TASKS,
            querying.parse_json_param("select", select),
        )
    except querying.QueryParseError as exc:
        raise _bad_request(exc) from exc

    row = await repository.get_task(task_id, projection=projection)
    if row is None:
        raise _not_found()
    return _to_document(row)


async def update_task(task_id: str, payload: schemas.TaskWrite) -> dict:
    given = payload.model_fields_set

    async with db.transaction():
        old = await repository.get_task(task_id)
        if old is None:
            raise _not_found()

        assigned_user = payload.assigned_user if "assigned_user" in given else old["assigned_user"]
        # An omitted name is derived again from the (possibly new) user.
        assigned_user_name = payload.assigned_user_name if "assigned_user_name" in given else None
        try:
            assignment = await assignments.resolve_assignment(assigned_user, assigned_user_name)
        except assignments.AssignmentError as exc:
            raise _bad_request(exc) from exc

        changes = {
            "name": payload.name,
            "deadline": payload.deadline,
            "assigned_user": assignment.user_id,
            "assigned_user_name": assignment.user_name,
        }
        if "description" in given:
            changes["description"] = payload.description
        if "completed" in given:
            changes["completed"] = payload.completed

        new = await repository.update_task(task_id, changes)
        if new is None:
            raise _not_found()
        try:
            await assignments.on_task_update(old, new)
        except assignments.AssignmentError as exc:
            raise _bad_request(exc) from exc

    logger.info(
        "task_updated task_id=%s assigned_user=%s completed=%s",
        task_id,
        new["assigned_user"],
        new["completed"],
    )
    return _to_document(new)


async def delete_task(task_id: str) -> None:
    async with db.transaction():
        row = await repository.delete_task(task_id)
        if row is None:
            raise _not_found()
        await assignments.on_task_delete(row)

    logger.info("task_deleted task_id=%s", task_id)
