"""
Operation (audit) log publishing.

Services describe what a user did as an ``OperationLogMessage`` and hand it to an
``OperationLogPublisher``, which forwards it to the logging service. Publishing is
scheduled as a background task, and a failure to publish is logged but never
fails the business operation that produced the message.
"""
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, Optional
from fastapi import Request
from pydantic import BaseModel, Field, field_validator
import httpx
import json
import logging
import uuid

from .config import common_settings

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
OPERATION_LOG_PATH = "/logging/operation-logs"


def now_timestamp() -> str:
    return datetime.now().strftime(TIMESTAMP_FORMAT)


class OperationLogMessage(BaseModel):
    """
    One audited user operation, as sent to the logging service.
    """
    user_id: Optional[int] = Field(None, description="User who performed the operation")
    trace_id: Optional[str] = Field(None, max_length=50, description="Correlation id of the operation")
    action: str = Field(..., min_length=1, max_length=50, description="Operation type, e.g. LOGIN")
    ip: Optional[str] = Field(None, max_length=45, description="Client IP address")
    detail: Optional[str] = Field(None, description="JSON document describing the operation")
    gmt_create: str = Field(default_factory=now_timestamp, description="yyyy-MM-dd HH:mm:ss")

    @field_validator("gmt_create")
    @classmethod
    def validate_gmt_create(cls, v: str) -> str:
        try:
            datetime.strptime(v, TIMESTAMP_FORMAT)
        except (TypeError, ValueError) as exc:
            raise ValueError("gmt_create must use the format yyyy-MM-dd HH:mm:ss") from exc
        return v

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "user_id": 42,
                    "trace_id": "6f1c2a7be1d34c0f9a3f6c1e2b7d8a90",
                    "action": "LOGIN",
                    "ip": "192.168.1.100",
                    "detail": "{\"operation\": \"user_login\", \"username\": \"alice\"}",
                    "gmt_create": "2024-01-15 10:30:00"
                }
            ]
        }
    }


def new_trace_id() -> str:
    return uuid.uuid4().hex


def client_ip(request: Request) -> Optional[str]:
    """Best-effort client address: X-Forwarded-For, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and forwarded.lower() != "unknown":
        # X-Forwarded-For can contain multiple IPs, take the first one
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.lower() != "unknown":
        return real_ip.strip()

    return request.client.host if request.client else None


def build_log_message(
    user_id: Optional[int],
    action: str,
    request: Request,
    detail: Dict[str, Any]
) -> OperationLogMessage:
    return OperationLogMessage(
        user_id=user_id,
        trace_id=new_trace_id(),
        action=action,
        ip=client_ip(request),
        detail=json.dumps(detail, default=str, ensure_ascii=False),
    )


class OperationLogPublisher:
    """Forwards operation log messages to the logging service over HTTP."""

    def __init__(
        self,
        base_url: str = common_settings.LOGGING_SERVICE_URL,
        timeout: float = common_settings.RPC_TIMEOUT_SECONDS,
        enabled: bool = common_settings.AUDIT_LOG_ENABLED,
        client: Optional[httpx.Client] = None
    ):
        self.enabled = enabled
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def publish(self, message: OperationLogMessage) -> bool:
        """
        Send one message. Returns True when the logging service accepted it.
        """
        if not self.enabled:
            return False

        try:
            response = self._client.post(OPERATION_LOG_PATH, json=message.model_dump())
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(
                "Failed to publish operation log: action=%s user_id=%s trace_id=%s error=%s",
                message.action, message.user_id, message.trace_id, e
            )
            return False

        logger.debug(
            "Operation log published: action=%s user_id=%s trace_id=%s",
            message.action, message.user_id, message.trace_id
        )
        return True


@lru_cache
def get_operation_log_publisher() -> OperationLogPublisher:
    """FastAPI dependency returning the process-wide publisher."""
    return OperationLogPublisher()
