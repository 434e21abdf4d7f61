"""
User business logic.
"""

from __future__ import annotations

import logging

import asyncpg
from fastapi import HTTPException, status

from taskapi.assignments import service as assignments
from taskapi.core import db, querying

from . import repository, schemas

logger = logging.getLogger(__name__)


def _to_document(row: dict) -> dict:
    return querying.row_to_document(repository.USERS, row)


def _bad_request(exc: Exception | str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")


def _duplicate_email() -> HTTPException:
    return _bad_request("A user with that email already exists.")


async def create_user(payload: schemas.UserWrite) -> dict:
    async with db.transaction():
        existing = await repository.get_user_by_email(payload.email)
        if existing is not None:
            raise _duplicate_email()
        try:
            row = await repository.insert_user(name=payload.name, email=payload.email)
        except asyncpg.UniqueViolationError as exc:
            raise _duplicate_email() from exc

    logger.info("user_created user_id=%s", row["id"])
    return _to_document(row)


async def list_users(
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
            repository.USERS,
            where=where,
            sort=sort,
            select=select,
            skip=skip,
            limit=limit,
            count=count,
        )
    except querying.QueryParseError as exc:
        raise _bad_request(exc) from exc

    if query.count:
        return await repository.count_users(query)
    rows = await repository.list_users(query)
    return [_to_document(row) for row in rows]


async def get_user(user_id: str, *, select: str | None = None) -> dict:
    try:
        projection = querying.parse_projection(
            repository.USERS,
            querying.parse_json_param("select", select),
        )
    except querying.QueryParseError as exc:
        raise _bad_request(exc) from exc

    row = await repository.get_user(user_id, projection=projection)
    if row is None:
        raise _not_found()
    return _to_document(row)


async def update_user(user_id: str, payload: schemas.UserWrite) -> dict:
    async with db.transaction():
        old = await repository.get_user(user_id)
        if old is None:
            raise _not_found()

        same_email = await repository.get_user_by_email(payload.email)
        if same_email is not None and same_email["id"] != user_id:
            raise _duplicate_email()

        pending: list[str] | None = None
        if payload.pending_tasks is not None:
            try:
                pending = await assignments.validate_pending_tasks(payload.pending_tasks)
            except assignments.AssignmentError as exc:
                raise _bad_request(exc) from exc

        try:
            row = await repository.update_user(user_id, name=payload.name, email=payload.email)
        except asyncpg.UniqueViolationError as exc:
            raise _duplicate_email() from exc
        if row is None:
            raise _not_found()

        if pending is not None:
            row = await assignments.apply_pending_tasks(row, pending)
        if row["name"] != old["name"]:
            await assignments.on_user_rename(row)

    logger.info("user_updated user_id=%s", user_id)
    return _to_document(row)


async def delete_user(user_id: str) -> dict:
    async with db.transaction():
        row = await repository.delete_user(user_id)
        if row is None:
            raise _not_found()
        unassigned = await assignments.on_user_delete(row)

    logger.info("user_deleted user_id=%s tasks_unassigned=%s", user_id, unassigned)
    return _to_document(row)
