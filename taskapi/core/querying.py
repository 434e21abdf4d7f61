"""
List-query translation: request parameters -> validated StoreQuery -> SQL.

The list endpoints accept Mongo-style JSON objects in the query string:

    ?where={"completed": false}&sort={"deadline": 1}&select={"name": 1}
    &skip=10&limit=5&count=true

Parsing is split from SQL generation so the parsed `StoreQuery` can be
inspected (and evaluated in-memory by the test fakes) independently of the
database. Only fields declared on a `Collection` can be referenced, so
column names never come from user input.

Supported `where` subset:
- `{"field": value}` equality
- `{"field": {"$eq"|"$ne"|"$gt"|"$gte"|"$lt"|"$lte": value}}`
- `{"field": {"$in"|"$nin": [values]}}`, `{"field": {"$exists": bool}}`
- `{"$and": [...]}`, `{"$or": [...]}`

Clauses are applied in the order filter -> sort -> projection -> skip -> limit.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

from pydantic import TypeAdapter, ValidationError


class QueryParseError(ValueError):
    """
    A query parameter could not be parsed. Maps to HTTP 400, never 404.
    """


# Field kinds.
ID = "id"  # primary key, text
REF = "ref"  # optional reference to another document ("" means unset)
TEXT = "text"
BOOL = "bool"
DATETIME = "datetime"
ID_LIST = "id_list"

_PG_TYPES = {
    ID: "text",
    REF: "text",
    TEXT: "text",
    BOOL: "boolean",
    DATETIME: "timestamptz",
    ID_LIST: "text[]",
}

_COMPARISON_OPS = {"$eq", "$ne", "$gt", "$gte", "$lt", "$lte", "$in", "$nin", "$exists"}
# Leading integer, as JavaScript parseInt reads it ("10abc" -> 10, "1.5" -> 1).
_LEADING_INT = re.compile(r"[+-]?\d+")
_RANGE_OPS = {"$gt": ">", "$gte": ">=", "$lt": "<", "$lte": "<="}
_SORT_DIRECTIONS = {
    1: 1,
    -1: -1,
    "1": 1,
    "-1": -1,
    "asc": 1,
    "ascending": 1,
    "desc": -1,
    "descending": -1,
}

_datetime_adapter = TypeAdapter(datetime)


@dataclass(frozen=True)
class FieldSpec:
    name: str
    column: str
    kind: str

    @property
    def pg_type(self) -> str:
        return _PG_TYPES[self.kind]


@dataclass(frozen=True)
class Collection:
    """
    A table plus the wire-level fields that may appear in list queries.

    `fields` order is the default column order for SELECT.
    """

    table: str
    fields: tuple[FieldSpec, ...]
    id_field: str = "_id"
    created_field: str = "dateCreated"

    def field(self, name: str) -> FieldSpec | None:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None


@dataclass(frozen=True)
class Comparison:
    field: FieldSpec
    op: str  # Mongo operator, e.g. "$eq"
    value: Any


@dataclass(frozen=True)
class Junction:
    kind: str  # "and" | "or"
    clauses: tuple["Condition", ...] = ()


Condition = Union[Comparison, Junction]


@dataclass(frozen=True)
class StoreQuery:
    condition: Junction = field(default_factory=lambda: Junction("and"))
    sort: tuple[tuple[FieldSpec, int], ...] = ()
    projection: tuple[FieldSpec, ...] | None = None
    skip: int = 0
    limit: int | None = None
    count: bool = False


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_json_param(name: str, raw: str | None) -> dict[str, Any] | None:
    """
    Decode a JSON-object query parameter. Empty/missing -> None.
    """
    if raw is None or not raw.strip():
        return None
    try:
        value = json.loads(raw)
    except ValueError as exc:
        raise QueryParseError(f"Invalid '{name}' parameter JSON") from exc
    if not isinstance(value, dict):
        raise QueryParseError(f"Invalid '{name}' parameter JSON")
    return value


def parse_filter(collection: Collection, expr: dict[str, Any] | None) -> Junction:
    if not expr:
        return Junction("and")
    return Junction("and", tuple(_parse_filter_object(collection, expr)))


def _parse_filter_object(collection: Collection, expr: Any) -> list[Condition]:
    if not isinstance(expr, dict):
        raise QueryParseError("Invalid 'where' parameter: expected an object.")

    clauses: list[Condition] = []
    for key, value in expr.items():
        if key in ("$and", "$or"):
            if not isinstance(value, list) or not value:
                raise QueryParseError(f"Invalid 'where' parameter: {key} needs a non-empty list.")
            parts = tuple(
                Junction("and", tuple(_parse_filter_object(collection, item))) for item in value
            )
            clauses.append(Junction(key[1:], parts))
            continue

        if str(key).startswith("$"):
            raise QueryParseError(f"Invalid 'where' parameter: unsupported operator '{key}'.")
        spec = collection.field(key)
        if spec is None:
            raise QueryParseError(f"Invalid 'where' parameter: unknown field '{key}'.")

        if isinstance(value, dict) and value and all(str(k).startswith("$") for k in value):
            for op, operand in value.items():
                clauses.append(_parse_comparison(spec, op, operand))
        else:
            clauses.append(_parse_comparison(spec, "$eq", value))
    return clauses


def _parse_comparison(spec: FieldSpec, op: str, operand: Any) -> Comparison:
    if op not in _COMPARISON_OPS:
        raise QueryParseError(f"Invalid 'where' parameter: unsupported operator '{op}'.")

    if op == "$exists":
        if not isinstance(operand, bool):
            raise QueryParseError("Invalid 'where' parameter: $exists expects true or false.")
        return Comparison(spec, op, operand)

    if spec.kind == ID_LIST:
        return _parse_list_comparison(spec, op, operand)

    if op in ("$in", "$nin"):
        if not isinstance(operand, list):
            raise QueryParseError(f"Invalid 'where' parameter: {op} on '{spec.name}' expects a list.")
        return Comparison(spec, op, tuple(_coerce(spec, item, allow_null=True) for item in operand))

    return Comparison(spec, op, _coerce(spec, operand, allow_null=op in ("$eq", "$ne")))


def _parse_list_comparison(spec: FieldSpec, op: str, operand: Any) -> Comparison:
    if op in _RANGE_OPS:
        raise QueryParseError(f"Invalid 'where' parameter: {op} is not supported on '{spec.name}'.")
    if op in ("$in", "$nin"):
        if not isinstance(operand, list) or not all(isinstance(item, str) for item in operand):
            raise QueryParseError(f"Invalid 'where' parameter: {op} on '{spec.name}' expects a list of ids.")
        return Comparison(spec, op, tuple(operand))
    # $eq / $ne: a single id tests membership, a list tests the whole array.
    if isinstance(operand, str):
        return Comparison(spec, op, operand)
    if isinstance(operand, list) and all(isinstance(item, str) for item in operand):
        return Comparison(spec, op, tuple(operand))
    raise QueryParseError(f"Invalid 'where' parameter: '{spec.name}' expects an id or a list of ids.")


def _coerce(spec: FieldSpec, value: Any, *, allow_null: bool) -> Any:
    if value is None:
        if not allow_null:
            raise QueryParseError(f"Invalid 'where' parameter: null is not allowed here for '{spec.name}'.")
        return None

    if spec.kind == REF:
        if not isinstance(value, str):
            raise QueryParseError(f"Invalid 'where' parameter: '{spec.name}' expects a string id.")
        if not value.strip():
            if not allow_null:
                raise QueryParseError(f"Invalid 'where' parameter: empty id is not allowed here for '{spec.name}'.")
            return None
        return value

    if spec.kind in (ID, TEXT):
        if not isinstance(value, str):
            raise QueryParseError(f"Invalid 'where' parameter: '{spec.name}' expects a string.")
        return value

    if spec.kind == BOOL:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in ("true", "false"):
            return value.lower() == "true"
        raise QueryParseError(f"Invalid 'where' parameter: '{spec.name}' expects true or false.")

    if spec.kind == DATETIME:
        if isinstance(value, bool):
            raise QueryParseError(f"Invalid 'where' parameter: '{spec.name}' expects a date.")
        if isinstance(value, str):
            try:
                value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            except ValueError:
                pass
        try:
            parsed = _datetime_adapter.validate_python(value)
        except ValidationError as exc:
            raise QueryParseError(f"Invalid 'where' parameter: '{spec.name}' expects a date.") from exc
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    raise QueryParseError(f"Invalid 'where' parameter: '{spec.name}' cannot be compared.")


def parse_sort(collection: Collection, expr: dict[str, Any] | None) -> tuple[tuple[FieldSpec, int], ...]:
    if not expr:
        return ()
    keys: list[tuple[FieldSpec, int]] = []
    for name, direction in expr.items():
        spec = collection.field(name)
        if spec is None:
            raise QueryParseError(f"Invalid 'sort' parameter: unknown field '{name}'.")
        key = direction.lower() if isinstance(direction, str) else direction
        if isinstance(key, bool) or not isinstance(key, (int, str)) or key not in _SORT_DIRECTIONS:
            raise QueryParseError(f"Invalid 'sort' parameter: direction for '{name}' must be 1 or -1.")
        keys.append((spec, _SORT_DIRECTIONS[key]))
    return tuple(keys)


def parse_projection(collection: Collection, expr: dict[str, Any] | None) -> tuple[FieldSpec, ...] | None:
    """
    Inclusion (`{"name": 1}`) or exclusion (`{"email": 0}`) projection.

    `_id` is kept unless explicitly excluded. Returns None for "all fields".
    """
    if not expr:
        return None

    flags: dict[str, bool] = {}
    for name, flag in expr.items():
        if collection.field(name) is None:
            raise QueryParseError(f"Invalid 'select' parameter: unknown field '{name}'.")
        if isinstance(flag, bool):
            flags[name] = flag
        elif flag in (0, 1):
            flags[name] = bool(flag)
        else:
            raise QueryParseError(f"Invalid 'select' parameter: '{name}' must be 0 or 1.")

    id_flag = flags.pop(collection.id_field, None)
    included = {name for name, flag in flags.items() if flag}
    excluded = {name for name, flag in flags.items() if not flag}
    if included and excluded:
        raise QueryParseError("Invalid 'select' parameter: cannot mix inclusion and exclusion.")

    if included or (id_flag is True and not excluded):
        keep = included if id_flag is False else included | {collection.id_field}
    else:
        keep = {spec.name for spec in collection.fields} - excluded
        if id_flag is False:
            keep.discard(collection.id_field)

    if not keep:
        raise QueryParseError("Invalid 'select' parameter: no fields left to return.")
    return tuple(spec for spec in collection.fields if spec.name in keep)


def _leading_int(raw: str) -> int | None:
    match = _LEADING_INT.match(raw.strip())
    return int(match.group()) if match else None


def parse_skip(raw: str | None) -> int:
    """
    Reads the leading integer, so "2.5" is 2 and "3rd" is 3. Negative or
    non-numeric values are rejected.
    """
    if raw is None or not raw.strip():
        return 0
    value = _leading_int(raw)
    if value is None or value < 0:
        raise QueryParseError('Invalid "skip" parameter. Must be a non-negative integer.')
    return value


def parse_limit(raw: str | None, *, default: int | None = None) -> int | None:
    if raw is None or not raw.strip():
        return default
    value = _leading_int(raw) or 0
    if value <= 0:
        raise QueryParseError('Invalid "limit" parameter. Must be a positive integer.')
    return value


def parse_count(raw: str | None) -> bool:
    return (raw or "").strip().lower() == "true"


def build_query(
    collection: Collection,
    *,
    where: str | None = None,
    sort: str | None = None,
    select: str | None = None,
    skip: str | None = None,
    limit: str | None = None,
    count: str | None = None,
    default_limit: int | None = None,
) -> StoreQuery:
    """
    Parse raw query-string values into a StoreQuery.
    """
    return StoreQuery(
        condition=parse_filter(collection, parse_json_param("where", where)),
        sort=parse_sort(collection, parse_json_param("sort", sort)),
        projection=parse_projection(collection, parse_json_param("select", select)),
        skip=parse_skip(skip),
        limit=parse_limit(limit, default=default_limit),
        count=parse_count(count),
    )


# ---------------------------------------------------------------------------
# SQL compilation
# ---------------------------------------------------------------------------


class _Params:
    def __init__(self) -> None:
        self.args: list[Any] = []

    def add(self, value: Any, cast: str) -> str:
        self.args.append(value)
        return f"${len(self.args)}::{cast}"


def _compile_condition(cond: Condition, params: _Params) -> str:
    if isinstance(cond, Junction):
        if not cond.clauses:
            return "TRUE" if cond.kind == "and" else "FALSE"
        joiner = " AND " if cond.kind == "and" else " OR "
        parts = [_compile_condition(c, params) for c in cond.clauses]
        return parts[0] if len(parts) == 1 else "(" + joiner.join(parts) + ")"
    return _compile_comparison(cond, params)


def _compile_comparison(cmp: Comparison, params: _Params) -> str:
    col = cmp.field.column
    op = cmp.op
    value = cmp.value

    if op == "$exists":
        return f"{col} IS NOT NULL" if value else f"{col} IS NULL"

    if cmp.field.kind == ID_LIST:
        if op in ("$in", "$nin"):
            overlap = f"{col} && {params.add(list(value), 'text[]')}"
            return overlap if op == "$in" else f"NOT ({overlap})"
        if isinstance(value, tuple):
            sql = f"{col} = {params.add(list(value), 'text[]')}"
        else:
            sql = f"{params.add(value, 'text')} = ANY({col})"
        return sql if op == "$eq" else f"NOT ({sql})"

    pg_type = cmp.field.pg_type
    if op in ("$in", "$nin"):
        present = [v for v in value if v is not None]
        has_null = len(present) != len(value)
        array = params.add(present, f"{pg_type}[]")
        if op == "$in":
            sql = f"{col} = ANY({array})"
            return f"({sql} OR {col} IS NULL)" if has_null else sql
        if has_null:
            return f"({col} IS NOT NULL AND {col} <> ALL({array}))"
        return f"({col} IS NULL OR {col} <> ALL({array}))"

    if value is None:
        return f"{col} IS NULL" if op == "$eq" else f"{col} IS NOT NULL"
    if op == "$eq":
        return f"{col} = {params.add(value, pg_type)}"
    if op == "$ne":
        return f"{col} IS DISTINCT FROM {params.add(value, pg_type)}"
    return f"{col} {_RANGE_OPS[op]} {params.add(value, pg_type)}"


def _order_by(collection: Collection, query: StoreQuery) -> str:
    parts: list[str] = []
    seen: set[str] = set()
    for spec, direction in query.sort:
        # Match document-store ordering: nulls sort before values ascending.
        parts.append(f"{spec.column} ASC NULLS FIRST" if direction > 0 else f"{spec.column} DESC NULLS LAST")
        seen.add(spec.name)
    for name in (collection.created_field, collection.id_field):
        spec = collection.field(name)
        if spec is not None and name not in seen:
            parts.append(f"{spec.column} ASC")
    return ", ".join(parts)


def compile_select(collection: Collection, query: StoreQuery) -> tuple[str, list[Any]]:
    params = _Params()
    fields = query.projection if query.projection is not None else collection.fields
    columns = ", ".join(spec.column for spec in fields)
    where = _compile_condition(query.condition, params)

    sql = f"SELECT {columns} FROM {collection.table} WHERE {where} ORDER BY {_order_by(collection, query)}"
    if query.skip:
        params.args.append(query.skip)
        sql += f" OFFSET ${len(params.args)}"
    if query.limit is not None:
        params.args.append(query.limit)
        sql += f" LIMIT ${len(params.args)}"
    return sql, params.args


def compile_count(collection: Collection, query: StoreQuery) -> tuple[str, list[Any]]:
    params = _Params()
    where = _compile_condition(query.condition, params)
    return f"SELECT count(*) FROM {collection.table} WHERE {where}", params.args


def select_columns(collection: Collection, projection: tuple[FieldSpec, ...] | None) -> str:
    fields = projection if projection is not None else collection.fields
    return ", ".join(spec.column for spec in fields)


def row_to_document(collection: Collection, row: dict[str, Any]) -> dict[str, Any]:
    """
    Rename DB columns to wire field names, keeping only the columns present
    (a projected row carries only the selected columns).
    """
    return {spec.name: row[spec.column] for spec in collection.fields if spec.column in row}
