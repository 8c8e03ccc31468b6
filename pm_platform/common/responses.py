"""
Response envelope used by every endpoint: ``{"code": "200", "message": "...", "data": ...}``
"""
from pydantic import BaseModel
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    code: str
    message: str
    data: Optional[T] = None


def success(data: Any = None, message: str = "OK") -> dict:
    return {"code": "200", "message": message, "data": data}


def created(data: Any = None, message: str = "Created") -> dict:
    return {"code": "201", "message": message, "data": data}


def error_body(code: str, message: str) -> dict:
    return {"code": code, "message": message, "data": None}
