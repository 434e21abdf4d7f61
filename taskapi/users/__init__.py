"""
User resource: /users endpoints, SQL and business logic.
"""
