"""
Table definitions for the task/user store.

`assigned_user` has no foreign key: the assignment service
clears it when a user is deleted and keeps `users.pending_tasks` in sync.
"""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id            text PRIMARY KEY DEFAULT gen_random_uuid()::text,
    name          text NOT NULL,
    email         text NOT NULL UNIQUE,
    pending_tasks text[] NOT NULL DEFAULT '{}',
    date_created  timestamptz NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS tasks (
    id                 text PRIMARY KEY DEFAULT gen_random_uuid()::text,
    name               text NOT NULL,
    description        text,
    deadline           timestamptz NOT NULL,
    completed          boolean NOT NULL DEFAULT false,
    assigned_user      text,
    assigned_user_name text,
    date_created       timestamptz NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS tasks_assigned_user_idx ON tasks (assigned_user);
CREATE INDEX IF NOT EXISTS tasks_date_created_idx ON tasks (date_created, id);
CREATE INDEX IF NOT EXISTS users_date_created_idx ON users (date_created, id);
"""
