"""
User persistence (raw SQL).

`pending_tasks` is a text[] of task ids. The single-statement helpers below
(`add_pending_task`, `remove_pending_task`, ...) are atomic per user row, so
concurrent requests cannot duplicate or lose ids.
"""

from __future__ import annotations

from taskapi.core import db, querying

USERS = querying.Collection(
    table="users",
    fields=(
        querying.FieldSpec("_id", "id", querying.ID),
        querying.FieldSpec("name", "name", querying.TEXT),
        querying.FieldSpec("email", "email", querying.TEXT),
        querying.FieldSpec("pendingTasks", "pending_tasks", querying.ID_LIST),
        querying.FieldSpec("dateCreated", "date_created", querying.DATETIME),
    ),
)

_COLUMNS = querying.select_columns(USERS, None)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


async def insert_user(*, name: str, email: str) -> dict:
    row = await db.fetch_one(
        f"""
        INSERT INTO users (name, email)
        VALUES ($1, $2)
        RETURNING {_COLUMNS}
        """,
        name,
        normalize_email(email),
    )
    if row is None:
        raise RuntimeError("Failed to create user.")
    return row


async def get_user(user_id: str, *, projection: tuple[querying.FieldSpec, ...] | None = None) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {querying.select_columns(USERS, projection)}
        FROM users
        WHERE id = $1
        """,
        user_id,
    )


async def get_user_by_email(email: str) -> dict | None:
    return await db.fetch_one(
        f"""
        SELECT {_COLUMNS}
        FROM users
        WHERE email = $1
        """,
        normalize_email(email),
    )


async def list_users(query: querying.StoreQuery) -> list[dict]:
    sql, args = querying.compile_select(USERS, query)
    return await db.fetch_all(sql, *args)


async def count_users(query: querying.StoreQuery) -> int:
    sql, args = querying.compile_count(USERS, query)
    return int(await db.fetch_value(sql, *args) or 0)


async def update_user(user_id: str, *, name: str, email: str) -> dict | None:
    return await db.fetch_one(
        f"""
        UPDATE users
        SET name = $2,
            email = $3
        WHERE id = $1
        RETURNING {_COLUMNS}
        """,
        user_id,
        name,
        normalize_email(email),
    )


async def set_pending_tasks(user_id: str, task_ids: list[str]) -> dict | None:
    return await db.fetch_one(
        f"""
        UPDATE users
        SET pending_tasks = $2::text[]
        WHERE id = $1
        RETURNING {_COLUMNS}
        """,
        user_id,
        list(task_ids),
    )


async def delete_user(user_id: str) -> dict | None:
    return await db.fetch_one(
        f"""
        DELETE FROM users
        WHERE id = $1
        RETURNING {_COLUMNS}
        """,
        user_id,
    )


async def add_pending_task(user_id: str, task_id: str) -> bool:
    """
    Append `task_id` unless already listed. Returns False if the user does not exist.
    """
    row = await db.fetch_one(
        """
        UPDATE users
        SET pending_tasks = CASE
            WHEN $2 = ANY(pending_tasks) THEN pending_tasks
            ELSE array_append(pending_tasks, $2)
        END
        WHERE id = $1
        RETURNING id
        """,
        user_id,
        task_id,
    )
    return row is not None


async def remove_pending_task(user_id: str, task_id: str) -> bool:
    """
    Remove `task_id` from the user's list. Returns True if it was listed.
    """
    row = await db.fetch_one(
        """
        UPDATE users
        SET pending_tasks = array_remove(pending_tasks, $2)
        WHERE id = $1
          AND $2 = ANY(pending_tasks)
        RETURNING id
        """,
        user_id,
        task_id,
    )
    return row is not None


async def remove_pending_tasks_elsewhere(task_ids: list[str], *, keep_user_id: str) -> int:
    """
    Remove the given task ids from every user's list except `keep_user_id`.
    """
    if not task_ids:
        return 0
    status = await db.execute(
        """
        UPDATE users
        SET pending_tasks = ARRAY(
            SELECT t FROM unnest(pending_tasks) AS t WHERE t <> ALL($1::text[])
        )
        WHERE pending_tasks && $1::text[]
          AND id <> $2
        """,
        list(task_ids),
        keep_user_id,
    )
    return db.affected_rows(status)


async def rebuild_pending_tasks() -> int:
    """
    Recompute every user's list from task assignment. Returns rows changed.
    """
    status = await db.execute(
        """
        UPDATE users u
        SET pending_tasks = expected.ids
        FROM (
            SELECT u2.id AS user_id,
                   COALESCE(
                       array_agg(t.id ORDER BY t.date_created, t.id) FILTER (WHERE t.id IS NOT NULL),
                       '{}'
                   ) AS ids
            FROM users u2
            LEFT JOIN tasks t
              ON t.assigned_user = u2.id
             AND NOT t.completed
            GROUP BY u2.id
        ) AS expected
        WHERE u.id = expected.user_id
          AND u.pending_tasks IS DISTINCT FROM expected.ids
        """
    )
    return db.affected_rows(status)
