"""
pm_platform - user / permission / operation-log microservices

Each service is a separate FastAPI application:

- ``pm_platform.user_service.main:app``
- ``pm_platform.permission_service.main:app``
- ``pm_platform.logging_service.main:app``
"""
