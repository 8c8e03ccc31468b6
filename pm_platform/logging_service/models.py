"""
Database models for the logging service
"""
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, Text, Index

from .db import Base


class OperationLog(Base):
    """
    One audited operation (login, registration, role change, ...).
    """
    __tablename__ = "operation_logs"

    log_id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id = Column(BigInteger, nullable=True, index=True)
    trace_id = Column(String(50), nullable=True)
    action = Column(String(50), nullable=False, index=True)
    ip = Column(String(45), nullable=True)
    detail = Column(Text, nullable=True)
    gmt_create = Column(DateTime, nullable=False, index=True)

    __table_args__ = (
        Index('ix_operation_logs_user_created', 'user_id', 'gmt_create'),
    )

    def __repr__(self):
        return f"<OperationLog(log_id={self.log_id}, user_id={self.user_id}, action={self.action})>"
