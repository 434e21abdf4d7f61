"""
Task resource: /tasks endpoints, SQL and business logic.
"""
