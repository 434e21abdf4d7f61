"""
Task persistence (raw SQL).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from taskapi.core import db, querying

TASKS = querying.Collection(
    table="tasks",
    fields=(
        querying.FieldSpec("_id", "id", querying.ID),
        querying.FieldSpec("name", "name", querying.TEXT),
        querying.FieldSpec("description", "description", querying.TEXT),
        querying.FieldSpec("deadline", "deadline", querying.DATETIME),
        querying.FieldSpec("completed", "completed", querying.BOOL),
        querying.FieldSpec("assignedUser", "assigned_user", querying.REF),
        querying.FieldSpec("assignedUserName", "assigned_user_name", querying.TEXT),
        querying.FieldSpec("dateCreated", "date_created", querying.DATETIME),
    ),
)

_COLUMNS = querying.select_columns(TASKS, None)

# Columns a task update may write.
_WRITABLE = ("name", "description", "deadline", "completed", "assigned_user", "assigned_user_name")


async def insert_task(
    *,
    name: str,
    deadline: datetime,
    description: str | None = None,
    completed: bool = False,
    assigned_user: str | None = None,
    assigned_user_name: str | None = None,
) -> dict:
    row = await db.fetch_one(
        f"""
        INSERT INTO tasks (name, description, deadline, completed, assigned_user, assigned_user_name)
        VALUES ($1, $2, $3, $4, $5, $6)
        RETURNING {_COLUMNS}
        """,
        name,
        description,
        deadline,
        completed,
        assigned_user,
        assigned_user_name,
    )
    if row is None:
        raise RuntimeError("Failed to create task.")
    return row


async def get_task(task_id: str, *, projection: tuple[querying.FieldSpec, ...] | None = None) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {querying.select_columns(TASKS, projection)}
        FROM tasks
        WHERE id = $1
        """,
        task_id,
    )


async def get_tasks_by_ids(task_ids: list[str]) -> list[dict]:
    if not task_ids:
        return []
    return await db.fetch_all(
        f"""
        SELECT {_COLUMNS}
        FROM tasks
        WHERE id = ANY($1::text[])
        """,
        list(task_ids),
    )


async def list_tasks(query: querying.StoreQuery) -> list[dict]:
    sql, args = querying.compile_select(TASKS, query)
    return await db.fetch_all(sql, *args)


async def count_tasks(query: querying.StoreQuery) -> int:
    sql, args = querying.compile_count(TASKS, query)
    return int(await db.fetch_value(sql, *args) or 0)


async def update_task(task_id: str, changes: dict[str, Any]) -> dict | None:
    """
    Update the given columns and return the full updated row (None if missing).
    """
    unknown = set(changes) - set(_WRITABLE)
    if unknown:
        raise ValueError(f"Not writable task columns: {sorted(unknown)}")
    if not changes:
        return await get_task(task_id)

    columns = [c for c in _WRITABLE if c in changes]
    assignments = ", ".join(f"{col} = ${i}" for i, col in enumerate(columns, start=2))
    return await db.fetch_one(
        f"""
        UPDATE tasks
        SET {assignments}
        WHERE id = $1
        RETURNING {_COLUMNS}
        """,
        task_id,
        *(changes[c] for c in columns),
    )


async def delete_task(task_id: str) -> dict | None:
    return await db.fetch_one(
        f"""
        DELETE FROM tasks
        WHERE id = $1
        RETURNING {_COLUMNS}
        """,
        task_id,
    )


async def clear_assignee(user_id: str) -> int:
    status = await db.execute(
        """
        UPDATE tasks
        SET assigned_user = NULL,
            assigned_user_name = NULL
        WHERE assigned_user = $1
        """,
        user_id,
    )
    return db.affected_rows(status)


async def rename_assignee(user_id: str, user_name: str) -> int:
    status = await db.execute(
        """
        UPDATE tasks
        SET assigned_user_name = $2
        WHERE assigned_user = $1
          AND assigned_user_name IS DISTINCT FROM $2
        """,
        user_id,
        user_name,
    )
    return db.affected_rows(status)


async def assign_tasks(task_ids: list[str], *, user_id: str, user_name: str) -> int:
    if not task_ids:
        return 0
    status = await db.execute(
        """
        UPDATE tasks
        SET assigned_user = $2,
            assigned_user_name = $3
        WHERE id = ANY($1::text[])
        """,
        list(task_ids),
        user_id,
        user_name,
    )
    return db.affected_rows(status)


async def unassign_tasks(task_ids: list[str], *, user_id: str) -> int:
    """
    Unassign the given tasks, but only those still assigned to `user_id`.
    """
    if not task_ids:
        return 0
    status = await db.execute(
        """
        UPDATE tasks
        SET assigned_user = NULL,
            assigned_user_name = NULL
        WHERE id = ANY($1::text[])
          AND assigned_user = $2
        """,
        list(task_ids),
        user_id,
    )
    return db.affected_rows(status)


async def clear_dangling_assignees() -> int:
    """
    Unassign tasks whose user no longer exists, and drop names left without a user.
    """
    status = await db.execute(
        """
        UPDATE tasks
        SET assigned_user = NULL,
            assigned_user_name = NULL
        WHERE (assigned_user IS NOT NULL
               AND NOT EXISTS (SELECT 1 FROM users u WHERE u.id = tasks.assigned_user))
           OR (assigned_user IS NULL AND assigned_user_name IS NOT NULL)
        """
    )
    return db.affected_rows(status)


async def refresh_assignee_names() -> int:
    status = await db.execute(
        """
        UPDATE tasks t
        SET assigned_user_name = u.name
        FROM users u
        WHERE t.assigned_user = u.id
          AND t.assigned_user_name IS DISTINCT FROM u.name
        """
    )
    return db.affected_rows(status)
