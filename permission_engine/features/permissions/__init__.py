"""
Permission resolution feature module.

Resolves a user's capabilities from their role, their active groups and their
individual override (most-permissive-wins), and manages those records.
"""
