from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.sql import func
from core.database import Base


class Like(Base):
    __tablename__ = "likes"

    id = Column(String(32), primary_key=True)
    video_id = Column(String(32), index=True, nullable=False)
    owner_uid = Column(String(128), index=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Comment(Base):
    __tablename__ = "comments"

    id = Column(String(32), primary_key=True)
    video_id = Column(String(32), index=True, nullable=False)
    owner_uid = Column(String(128), index=True, nullable=False)
    content = Column(Text, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
