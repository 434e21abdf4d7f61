"""
Assignment bookkeeping between tasks and users.

Two denormalised facts are kept in step with `tasks.assigned_user`:
- `tasks.assigned_user_name` equals the assigned user's name
- `users.pending_tasks` lists exactly the incomplete tasks assigned to the user

The feature services call these hooks inside their request transaction, after
validating input and after the entity write itself succeeded. Every list
mutation is one atomic UPDATE, persisted immediately.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from taskapi.tasks import repository as tasks_repository
from taskapi.users import repository as users_repository

logger = logging.getLogger(__name__)

# Values clients send to mean "no assignee".
UNASSIGNED_NAMES = {"", "unassigned"}


class AssignmentError(Exception):
    pass


class InvalidReferenceError(AssignmentError):
    """
    A referenced user or task id does not resolve.
    """

    def __init__(self, message: str, ids: list[str] | tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.ids = list(ids)


class InconsistentAssignmentError(AssignmentError):
    """
    The request contradicts the assignment invariants (e.g. name does not match user).
    """


@dataclass(frozen=True)
class Assignment:
    user_id: str | None = None
    user_name: str | None = None


@dataclass(frozen=True)
class ReconcileStats:
    tasks_unassigned: int
    task_names_fixed: int
    users_rebuilt: int


def _clean(value: str | None) -> str | None:
    value = (value or "").strip()
    return value or None


def _pending_owner(task: dict) -> str | None:
    """
    The user whose pending list should contain this task, if any.
    """
    if task.get("completed"):
        return None
    return task.get("assigned_user") or None


async def resolve_assignment(assigned_user: str | None, assigned_user_name: str | None) -> Assignment:
    """
    Validate an assignedUser/assignedUserName pair before anything is written.

    Omitted names are filled from the user; a name that disagrees with the
    user, or a name without a user, is rejected.
    """
    user_id = _clean(assigned_user)
    name = _clean(assigned_user_name)
    if name is not None and name.lower() in UNASSIGNED_NAMES:
        name = None

    if user_id is None:
        if name is not None:
            raise InconsistentAssignmentError("assignedUserName was given without an assignedUser.")
        return Assignment()

    user = await users_repository.get_user(user_id)
    if user is None:
        raise InvalidReferenceError(f"assignedUser '{user_id}' does not reference an existing user.", [user_id])

    if name is not None and name != user["name"]:
        raise InconsistentAssignmentError(
            f"assignedUserName '{name}' does not match the name of user '{user_id}'."
        )
    return Assignment(user_id=user_id, user_name=str(user["name"]))


async def on_task_create(task: dict) -> None:
    owner = _pending_owner(task)
    if owner is None:
        return
    if not await users_repository.add_pending_task(owner, task["id"]):
        raise InvalidReferenceError(f"assignedUser '{owner}' does not reference an existing user.", [owner])
    logger.debug("pending_task_added user_id=%s task_id=%s", owner, task["id"])


async def on_task_update(old: dict, new: dict) -> None:
    """
    Move the task between pending lists after an update.

    Covers reassignment (A -> B), completion (drop from the assignee) and
    reopening (add back). Removing an id that is not listed is a no-op.
    """
    task_id = new["id"]
    before_user = old.get("assigned_user") or None
    after_owner = _pending_owner(new)

    if before_user is not None and before_user != after_owner:
        if await users_repository.remove_pending_task(before_user, task_id):
            logger.debug("pending_task_removed user_id=%s task_id=%s", before_user, task_id)

    if after_owner is not None:
        if not await users_repository.add_pending_task(after_owner, task_id):
            raise InvalidReferenceError(
                f"assignedUser '{after_owner}' does not reference an existing user.", [after_owner]
            )
        logger.debug("pending_task_added user_id=%s task_id=%s", after_owner, task_id)


async def on_task_delete(task: dict) -> None:
    user_id = task.get("assigned_user") or None
    if user_id is None:
        return
    if await users_repository.remove_pending_task(user_id, task["id"]):
        logger.debug("pending_task_removed user_id=%s task_id=%s", user_id, task["id"])


async def on_user_delete(user: dict) -> int:
    """
    Unassign every task that referenced the deleted user. Returns the task count.
    """
    count = await tasks_repository.clear_assignee(user["id"])
    if count:
        logger.info("tasks_unassigned user_id=%s count=%s", user["id"], count)
    return count


async def on_user_rename(user: dict) -> int:
    return await tasks_repository.rename_assignee(user["id"], user["name"])


async def validate_pending_tasks(task_ids: list[str]) -> list[str]:
    """
    Check ids given for a user's pendingTasks. Returns them de-duplicated, in order.

    Every id must name an existing, incomplete task.
    """
    wanted = list(dict.fromkeys(task_ids))
    if not wanted:
        return []

    found = {row["id"]: row for row in await tasks_repository.get_tasks_by_ids(wanted)}
    missing = [i for i in wanted if i not in found]
    if missing:
        raise InvalidReferenceError("One or more pendingTasks IDs are invalid.", missing)

    completed = [i for i in wanted if found[i].get("completed")]
    if completed:
        raise InconsistentAssignmentError(
            f"pendingTasks may only list incomplete tasks; completed: {', '.join(completed)}."
        )
    return wanted


async def apply_pending_tasks(user: dict, task_ids: list[str]) -> dict:
    """
    Make `task_ids` (already validated) the user's pending list.

    Listed tasks are taken over from their previous assignee; tasks dropped
    from the list are unassigned if they still point at this user.
    """
    user_id = user["id"]
    previous = list(user.get("pending_tasks") or [])
    dropped = [i for i in previous if i not in task_ids]

    if dropped:
        await tasks_repository.unassign_tasks(dropped, user_id=user_id)
    if task_ids:
        await users_repository.remove_pending_tasks_elsewhere(task_ids, keep_user_id=user_id)
        await tasks_repository.assign_tasks(task_ids, user_id=user_id, user_name=user["name"])

    updated = await users_repository.set_pending_tasks(user_id, task_ids)
    if updated is None:
        raise InvalidReferenceError(f"User '{user_id}' does not exist.", [user_id])
    logger.info(
        "pending_tasks_replaced user_id=%s count=%s dropped=%s",
        user_id,
        len(task_ids),
        len(dropped),
    )
    return updated


async def reconcile() -> ReconcileStats:
    """
    Repair pass: derive names and pending lists again from task assignment.
    """
    stats = ReconcileStats(
        tasks_unassigned=await tasks_repository.clear_dangling_assignees(),
        task_names_fixed=await tasks_repository.refresh_assignee_names(),
        users_rebuilt=await users_repository.rebuild_pending_tasks(),
    )
    logger.info(
        "reconcile_complete tasks_unassigned=%s task_names_fixed=%s users_rebuilt=%s",
        stats.tasks_unassigned,
        stats.task_names_fixed,
        stats.users_rebuilt,
    )
    return stats
