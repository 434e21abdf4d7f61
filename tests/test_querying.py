# tests/test_querying.py

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from taskapi.core import querying
from taskapi.tasks.repository import TASKS
from taskapi.users.repository import USERS


def _q(collection, **params) -> querying.StoreQuery:
    encoded = {k: json.dumps(v) if isinstance(v, (dict, list)) else v for k, v in params.items()}
    return querying.build_query(collection, **encoded)


def test_empty_query_selects_everything_in_insertion_order() -> None:
    sql, args = querying.compile_select(TASKS, _q(TASKS))

    assert sql == (
        "SELECT id, name, description, deadline, completed, assigned_user, assigned_user_name, date_created "
        "FROM tasks WHERE TRUE ORDER BY date_created ASC, id ASC"
    )
    assert args == []


def test_clauses_compile_in_filter_sort_projection_skip_limit_order() -> None:
    query = _q(
        TASKS,
        where={"completed": False},
        sort={"name": 1},
        select={"name": 1},
        skip="1",
        limit="2",
    )

    sql, args = querying.compile_select(TASKS, query)

    assert sql == (
        "SELECT id, name FROM tasks WHERE completed = $1::boolean "
        "ORDER BY name ASC NULLS FIRST, date_created ASC, id ASC OFFSET $2 LIMIT $3"
    )
    assert args == [False, 1, 2]


def test_or_with_unassigned_sentinel_and_null_in_list() -> None:
    query = _q(TASKS, where={"$or": [{"assignedUser": ""}, {"assignedUser": {"$in": ["u1", None]}}]})

    sql, args = querying.compile_select(TASKS, query)

    assert "WHERE (assigned_user IS NULL OR (assigned_user = ANY($1::text[]) OR assigned_user IS NULL))" in sql
    assert args == [["u1"]]


def test_range_operators_coerce_dates_to_aware_datetimes() -> None:
    query = _q(TASKS, where={"deadline": {"$gte": "2025-01-01", "$lt": "2025-02-01T00:00:00Z"}})

    sql, args = querying.compile_select(TASKS, query)

    assert "(deadline >= $1::timestamptz AND deadline < $2::timestamptz)" in sql
    assert args == [
        datetime(2025, 1, 1, tzinfo=timezone.utc),
        datetime(2025, 2, 1, tzinfo=timezone.utc),
    ]


def test_pending_tasks_equality_with_single_id_tests_membership() -> None:
    sql, args = querying.compile_select(USERS, _q(USERS, where={"pendingTasks": "t1"}))

    assert "WHERE $1::text = ANY(pending_tasks)" in sql
    assert args == ["t1"]


def test_pending_tasks_in_tests_overlap_and_nin_negates() -> None:
    sql, _ = querying.compile_select(USERS, _q(USERS, where={"pendingTasks": {"$nin": ["a", "b"]}}))

    assert "WHERE NOT (pending_tasks && $1::text[])" in sql


def test_ne_and_nin_keep_rows_without_a_value() -> None:
    query = _q(TASKS, where={"description": {"$ne": "x"}, "name": {"$nin": ["a"]}})

    sql, _ = querying.compile_select(TASKS, query)

    assert "description IS DISTINCT FROM $1::text" in sql
    assert "(name IS NULL OR name <> ALL($2::text[]))" in sql


def test_exists_maps_to_null_checks() -> None:
    sql, _ = querying.compile_select(TASKS, _q(TASKS, where={"assignedUser": {"$exists": False}}))

    assert "WHERE assigned_user IS NULL" in sql


def test_count_ignores_skip_and_limit() -> None:
    query = _q(USERS, where={"name": "A"}, skip="5", limit="1", count="true")

    sql, args = querying.compile_count(USERS, query)

    assert query.count is True
    assert sql == "SELECT count(*) FROM users WHERE name = $1::text"
    assert args == ["A"]


def test_sort_descending_puts_nulls_last() -> None:
    sql, _ = querying.compile_select(TASKS, _q(TASKS, sort={"deadline": "desc", "dateCreated": -1}))

    assert sql.endswith("ORDER BY deadline DESC NULLS LAST, date_created DESC NULLS LAST, id ASC")


def test_default_limit_applies_only_when_limit_missing() -> None:
    assert querying.build_query(TASKS, default_limit=100).limit == 100
    assert querying.build_query(TASKS, limit="7", default_limit=100).limit == 7
    assert querying.build_query(USERS).limit is None


@pytest.mark.parametrize(
    ("select", "expected"),
    [
        ({"name": 1}, ("_id", "name")),
        ({"_id": 1}, ("_id",)),
        ({"_id": True, "email": 1}, ("_id", "email")),
        ({"name": 1, "_id": 0}, ("name",)),
        ({"_id": 0}, ("name", "email", "pendingTasks", "dateCreated")),
        ({"email": 0, "pendingTasks": False}, ("_id", "name", "dateCreated")),
    ],
)
def test_projection_inclusion_and_exclusion(select: dict, expected: tuple[str, ...]) -> None:
    projection = querying.parse_projection(USERS, select)

    assert tuple(spec.name for spec in projection) == expected


def test_projection_of_single_row_keeps_only_selected_columns() -> None:
    projection = querying.parse_projection(USERS, {"name": 1, "_id": 0})
    row = {"name": "A"}

    assert querying.select_columns(USERS, projection) == "name"
    assert querying.row_to_document(USERS, row) == {"name": "A"}


@pytest.mark.parametrize(
    ("params", "message"),
    [
        ({"where": "{not json"}, "Invalid 'where' parameter JSON"),
        ({"where": "[1, 2]"}, "Invalid 'where' parameter JSON"),
        ({"sort": "nope"}, "Invalid 'sort' parameter JSON"),
        ({"select": "1"}, "Invalid 'select' parameter JSON"),
        ({"where": '{"owner": "x"}'}, "unknown field 'owner'"),
        ({"where": '{"name": {"$regex": "^a"}}'}, "unsupported operator '$regex'"),
        ({"where": '{"$nor": [{"name": "a"}]}'}, "unsupported operator '$nor'"),
        ({"where": '{"$not": {"name": "a"}}'}, "unsupported operator '$not'"),
        ({"where": '{"completed": "maybe"}'}, "'completed' expects true or false"),
        ({"where": '{"deadline": {"$gt": "soon"}}'}, "'deadline' expects a date"),
        ({"where": '{"name": {"$in": "a"}}'}, "$in on 'name' expects a list"),
        ({"where": '{"$or": []}'}, "$or needs a non-empty list"),
        ({"where": '{"name": {"$gt": null}}'}, "null is not allowed"),
        ({"sort": '{"name": 2}'}, "direction for 'name' must be 1 or -1"),
        ({"select": '{"name": 1, "completed": 0}'}, "cannot mix inclusion and exclusion"),
        ({"skip": "-1"}, 'Invalid "skip" parameter'),
        ({"skip": "abc"}, 'Invalid "skip" parameter'),
        ({"skip": "-2.5"}, 'Invalid "skip" parameter'),
        ({"limit": "0"}, 'Invalid "limit" parameter'),
        ({"limit": "bar"}, 'Invalid "limit" parameter'),
        ({"limit": "0.9"}, 'Invalid "limit" parameter'),
    ],
)
def test_malformed_parameters_raise_parse_error(params: dict, message: str) -> None:
    with pytest.raises(querying.QueryParseError) as excinfo:
        querying.build_query(TASKS, **params)

    assert message in str(excinfo.value)


def test_pending_tasks_rejects_range_operators() -> None:
    with pytest.raises(querying.QueryParseError):
        querying.build_query(USERS, where='{"pendingTasks": {"$gt": "a"}}')


@pytest.mark.parametrize(("raw", "expected"), [("true", True), ("TRUE", True), ("false", False), ("1", False), (None, False)])
def test_count_flag(raw: str | None, expected: bool) -> None:
    assert querying.parse_count(raw) is expected


def test_empty_strings_are_treated_as_missing() -> None:
    query = querying.build_query(TASKS, where="", sort=" ", select="", skip="", limit="")

    assert query == querying.StoreQuery()


@pytest.mark.parametrize(
    ("skip", "limit", "expected"),
    [("1.5", "10abc", (1, 10)), (" 3rd", "+2", (3, 2)), ("0", "7.9", (0, 7))],
)
def test_skip_and_limit_read_the_leading_integer(skip: str, limit: str, expected: tuple[int, int]) -> None:
    query = querying.build_query(TASKS, skip=skip, limit=limit)

    assert (query.skip, query.limit) == expected


def test_id_only_projection_compiles_to_id_column() -> None:
    sql, _ = querying.compile_select(TASKS, _q(TASKS, select={"_id": 1}))

    assert sql.startswith("SELECT id FROM tasks ")
