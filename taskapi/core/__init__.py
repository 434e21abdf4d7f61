"""
Shared, cross-cutting code for the API.

`core/` holds small building blocks that both features use (DB wiring, list
query translation, response envelope, logging). Keep feature-specific SQL and
business logic in the corresponding feature package (e.g. `tasks/`).
"""
