"""
logging_service package

Stores operation (audit) log records sent by the user and permission services
and exposes them through a filterable, paginated query endpoint.
"""
