"""
Building blocks shared by the user, permission and logging services:
configuration base, error taxonomy and response envelope, token handling,
and operation log publishing.
"""
