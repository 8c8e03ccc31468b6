"""
permission_service package

Owns roles and user-to-role bindings. Exposes internal endpoints used by the
user service (bind a default role, look up a user's role, list users by role)
and super-admin endpoints that promote or demote users.
"""
