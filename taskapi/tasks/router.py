"""
Task API endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Query, Response, status

from taskapi.core.responses import envelope

from . import schemas, service

router = APIRouter()


@router.post("/tasks", status_code=status.HTTP_201_CREATED)
async def create_task(payload: schemas.TaskWrite) -> dict:
    task = await service.create_task(payload)
    return envelope("Task created", task)


@router.get("/tasks")
async def list_tasks(
    where: str | None = Query(default=None),
    sort: str | None = Query(default=None),
    select: str | None = Query(default=None),
    skip: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    count: str | None = Query(default=None),
) -> dict:
    """
    List tasks. `where`/`sort`/`select` are JSON objects; `count=true` returns a number.
    """
    data = await service.list_tasks(
        where=where,
        sort=sort,
        select=select,
        skip=skip,
        limit=limit,
        count=count,
    )
    return envelope("OK", data)


@router.get("/tasks/{task_id}")
async def get_task(task_id: str, select: str | None = Query(default=None)) -> dict:
    task = await service.get_task(task_id, select=select)
    return envelope("OK", task)


@router.put("/tasks/{task_id}")
async def update_task(task_id: str, payload: schemas.TaskWrite) -> dict:
    task = await service.update_task(task_id, payload)
    return envelope("Task updated", task)


@router.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: str) -> Response:
    await service.delete_task(task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
