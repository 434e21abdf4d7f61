"""
User API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Query, status

from taskapi.core.responses import envelope

from . import schemas, service

router = APIRouter()


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def create_user(payload: schemas.UserWrite) -> dict:
    user = await service.create_user(payload)
    return envelope("User created", user)


@router.get("/users")
async def list_users(
    where: str | None = Query(default=None),
    sort: str | None = Query(default=None),
    select: str | None = Query(default=None),
    skip: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    count: str | None = Query(default=None),
) -> dict:
    data = await service.list_users(
        where=where,
        sort=sort,
        select=select,
        skip=skip,
        limit=limit,
        count=count,
    )
    return envelope("OK", data)


@router.get("/users/{user_id}")
async def get_user(user_id: str, select: str | None = Query(default=None)) -> dict:
    user = await service.get_user(user_id, select=select)
    return envelope("OK", user)


@router.put("/users/{user_id}")
async def update_user(user_id: str, payload: schemas.UserWrite) -> dict:
    user = await service.update_user(user_id, payload)
    return envelope("User updated", user)


@router.delete("/users/{user_id}")
async def delete_user(user_id: str) -> dict:
    """
    Delete a user; their tasks stay but become unassigned.
    """
    await service.delete_user(user_id)
    return envelope("User deleted")
