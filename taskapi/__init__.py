"""
REST backend for tasks and users with assignment bookkeeping.
"""
