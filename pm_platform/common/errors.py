"""
Error taxonomy shared by the services and the handlers that render it.

Every business failure is raised as a ``ServiceError`` subclass; the handlers
registered by ``register_exception_handlers`` turn them into the
``{"code", "message", "data": null}`` envelope with the matching HTTP status.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .responses import error_body

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for errors that map onto an HTTP status and envelope code."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return str(self.status_code)


class ValidationError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request parameters"


class InvalidPage(ValidationError):
    default_message = "page must be an integer greater than or equal to 1"


class InvalidPageSize(ValidationError):
    default_message = "size must be an integer between 1 and 100"


class InvalidDateFormat(ValidationError):
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"{field} must use the format yyyy-MM-dd HH:mm:ss")


class InvalidSortField(ValidationError):
    def __init__(self, field: str, message: str = None):
        self.field = field
        super().__init__(message or f"Unsupported sort field: {field}")


class InvalidSortDirection(ValidationError):
    def __init__(self, direction: str):
        self.direction = direction
        super().__init__(f"Unsupported sort direction: {direction}; use asc or desc")


class AuthenticationError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"


class PermissionDenied(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Permission denied"


class NotFound(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class Conflict(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class UserAlreadyExists(Conflict):
    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Username already exists: {username}")


class DependencyError(ServiceError):
    """A downstream service or the database could not be reached in time.

    Retryable: every call guarded by it is an idempotent read or is rolled back.
    """

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "A dependent service is unavailable, please retry later"


class InternalError(ServiceError):
    pass


def register_exception_handlers(app: FastAPI) -> None:
    """Install envelope-rendering handlers on a service app."""

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'][1:]) or 'body'}: {err['msg']}"
            for err in exc.errors()
        )
        logger.warning("Parameter validation failed on %s: %s", request.url.path, details)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body("400", f"Parameter validation failed: {details}")
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.status_code), str(exc.detail))
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.error("Unexpected error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body("500", InternalError.default_message)
        )
