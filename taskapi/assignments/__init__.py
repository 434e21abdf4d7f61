"""
Keeps task assignment and users' pending-task lists consistent.
"""
