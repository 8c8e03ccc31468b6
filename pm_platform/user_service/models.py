from sqlalchemy import Column, BigInteger, Integer, String, DateTime, Index
from datetime import datetime

from .db import Base


class User(Base):
    __tablename__ = "users"
    user_id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    # pbkdf2 hash, never returned by any endpoint
    password = Column(String(255), nullable=False)
    email = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)
    gmt_create = Column(DateTime, default=datetime.now, nullable=False)
    gmt_modified = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    __table_args__ = (
        Index('ix_users_gmt_create', 'gmt_create'),
        # ids of deleted users are never handed out again
        {"sqlite_autoincrement": True},
    )

    def __repr__(self):
        return f"<User(user_id={self.user_id}, username={self.username})>"
