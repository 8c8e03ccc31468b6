"""
Operation log ingestion and query endpoints
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime
from typing import Optional
import logging

from ...common.audit import OperationLogMessage, TIMESTAMP_FORMAT
from ...common.errors import DependencyError
from ...common.responses import ApiResponse, created, success
from ..config import settings
from ..db import get_db
from ..models import OperationLog
from ..schemas import OperationLogIngestResponse, OperationLogListResponse, OperationLogOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/logging", tags=["Operation Logs"])


def to_out(log: OperationLog) -> OperationLogOut:
    return OperationLogOut(
        log_id=log.log_id,
        user_id=log.user_id,
        trace_id=log.trace_id,
        action=log.action,
        ip=log.ip,
        detail=log.detail,
        gmt_create=log.gmt_create.strftime(TIMESTAMP_FORMAT),
    )


@router.post(
    "/operation-logs",
    response_model=ApiResponse[OperationLogIngestResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Ingest an operation log record",
)
def ingest_operation_log(message: OperationLogMessage, db: Session = Depends(get_db)):
    """
    Persist one operation log message sent by another service.
    """
    record = OperationLog(
        user_id=message.user_id,
        trace_id=message.trace_id,
        action=message.action,
        ip=message.ip,
        detail=message.detail,
        gmt_create=datetime.strptime(message.gmt_create, TIMESTAMP_FORMAT),
    )
    try:
        db.add(record)
        db.commit()
        db.refresh(record)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to store operation log: action=%s user_id=%s", message.action, message.user_id, exc_info=True)
        raise DependencyError("Failed to store operation log") from e

    logger.info(
        "Operation log stored: log_id=%s user_id=%s action=%s trace_id=%s",
        record.log_id, record.user_id, record.action, record.trace_id
    )
    return created(OperationLogIngestResponse(log_id=record.log_id), "Operation log accepted")


@router.get(
    "/operation-logs",
    response_model=ApiResponse[OperationLogListResponse],
    summary="Query operation log records",
)
def list_operation_logs(
    user_id: Optional[int] = Query(None, gt=0, description="Filter by user ID"),
    action: Optional[str] = Query(None, description="Filter by action, e.g. LOGIN"),
    limit: int = Query(100, ge=1, le=settings.MAX_QUERY_LIMIT, description="Maximum number of records"),
    offset: int = Query(0, ge=0, description="Number of records to skip"),
    db: Session = Depends(get_db)
):
    """
    Newest records first. Filters are optional and combined with AND.
    """
    query = db.query(OperationLog)
    if user_id is not None:
        query = query.filter(OperationLog.user_id == user_id)
    if action:
        query = query.filter(OperationLog.action == action)

    total = query.count()
    logs = []
    if offset < total:
        logs = (
            query.order_by(OperationLog.gmt_create.desc(), OperationLog.log_id.desc())
            .limit(limit)
            .offset(offset)
            .all()
        )

    logger.info(
        "Operation log query: total=%s returned=%s user_id=%s action=%s",
        total, len(logs), user_id, action
    )
    return success(OperationLogListResponse(
        logs=[to_out(log) for log in logs],
        total=total,
        limit=limit,
        offset=offset,
    ))
