from sqlalchemy import Column, BigInteger, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime

from .db import Base


class Role(Base):
    __tablename__ = "roles"
    role_id = Column(Integer, primary_key=True, autoincrement=True)
    role_code = Column(String(20), unique=True, nullable=False, index=True)
    role_name = Column(String(50), nullable=False)
    gmt_create = Column(DateTime, default=datetime.utcnow, nullable=False)


class UserRole(Base):
    __tablename__ = "user_roles"
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    # one role per user
    user_id = Column(BigInteger, unique=True, nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("roles.role_id"), nullable=False, index=True)
    gmt_create = Column(DateTime, default=datetime.utcnow, nullable=False)

    role = relationship("Role")
