"""
Pydantic schemas for the logging service API
"""
from pydantic import BaseModel, Field
from typing import List, Optional


class OperationLogOut(BaseModel):
    log_id: int = Field(..., description="Log record id")
    user_id: Optional[int] = Field(None, description="User who performed the operation")
    trace_id: Optional[str] = Field(None, description="Correlation id")
    action: str = Field(..., description="Operation type")
    ip: Optional[str] = Field(None, description="Client IP address")
    detail: Optional[str] = Field(None, description="JSON detail document")
    gmt_create: str = Field(..., description="yyyy-MM-dd HH:mm:ss")


class OperationLogIngestResponse(BaseModel):
    log_id: int
    status: str = "accepted"


class OperationLogListResponse(BaseModel):
    logs: List[OperationLogOut]
    total: int
    limit: int
    offset: int
