"""
Owner accounts and watch history
Accounts are managed elsewhere; the catalog only reads the profile projection
"""
from sqlalchemy import Column, String, Text, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from core.database import Base


class User(Base):
    __tablename__ = "users"

    uid = Column(String(128), primary_key=True, index=True)
    username = Column(String(64), unique=True, index=True, nullable=False)
    fullname = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=True)
    avatar = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class WatchHistory(Base):
    __tablename__ = "watch_history"
    __table_args__ = (
        UniqueConstraint("user_uid", "video_id", name="uq_watch_history_user_video"),
    )

    id = Column(String(32), primary_key=True)
    user_uid = Column(String(128), index=True, nullable=False)
    # Plain column: history rows are cleaned up after the video row is gone
    video_id = Column(String(32), index=True, nullable=False)
    watched_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
