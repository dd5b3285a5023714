"""
Video catalog records
Each row points at two external blobs (media + thumbnail) in the blob store
"""
from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, Float, ForeignKey, Index, CheckConstraint, literal_column
from sqlalchemy.sql import func
from core.database import Base


class Video(Base):
    __tablename__ = "videos"
    __table_args__ = (
        CheckConstraint("views >= 0", name="ck_videos_views_non_negative"),
        CheckConstraint("duration > 0", name="ck_videos_duration_positive"),
        Index("ix_videos_published_created", "is_published", "created_at"),
    )

    id = Column(String(32), primary_key=True, index=True)
    owner_uid = Column(String(128), ForeignKey("users.uid"), index=True, nullable=False)

    # Primary media blob
    video_file_id = Column(Text, nullable=False)
    video_file_url = Column(Text, nullable=False)
    # Thumbnail blob
    thumbnail_id = Column(Text, nullable=False)
    thumbnail_url = Column(Text, nullable=False)

    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    duration = Column(Float, nullable=False)
    views = Column(Integer, default=0, nullable=False)
    is_published = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def to_dict(self, owner=None):
        result = {
            "id": self.id,
            "ownerId": self.owner_uid,
            "videoFile": {"externalId": self.video_file_id, "url": self.video_file_url},
            "thumbnail": {"externalId": self.thumbnail_id, "url": self.thumbnail_url},
            "title": self.title,
            "description": self.description,
            "duration": self.duration,
            "views": self.views or 0,
            "isPublished": bool(self.is_published),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        if owner is not None:
            result["owner"] = owner
        return result


def search_document():
    """Full-text document over title and description (PostgreSQL only)."""
    return func.to_tsvector(
        literal_column("'english'"),
        func.coalesce(Video.title, "") + " " + func.coalesce(Video.description, ""),
    )


# GIN index backing text search; other dialects fall back to LIKE matching
Index("ix_videos_search", search_document(), postgresql_using="gin").ddl_if(dialect="postgresql")
