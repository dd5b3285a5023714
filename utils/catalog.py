"""
Catalog repository: every SQL statement the catalog issues is built here.

Methods are blocking and open their own Session, so callers can run several of
them concurrently on worker threads. Rows leave this module as plain dicts
(`Video.to_dict` plus the owner projection) so no ORM instance escapes its
session.
"""
import re
import uuid
import operator
from contextlib import contextmanager
from functools import reduce
from typing import Optional, List, Tuple, Dict

from sqlalchemy import select, update, delete, func, case, or_, false, literal, literal_column
from sqlalchemy.exc import IntegrityError

from core.config import logger
from models.video import Video, search_document
from models.user import User, WatchHistory
from models.engagement import Like, Comment

SORT_FIELDS = {
    "createdAt": Video.created_at,
    "views": Video.views,
    "duration": Video.duration,
    "title": Video.title,
}
DEFAULT_SORT_FIELD = "createdAt"

MAX_SEARCH_TERMS = 10
_VIDEO_ID_RE = re.compile(r"^[0-9a-f]{32}$")
_TERM_RE = re.compile(r"\w+", re.UNICODE)


def new_video_id() -> str:
    return uuid.uuid4().hex


def is_valid_video_id(video_id: Optional[str]) -> bool:
    return bool(video_id) and bool(_VIDEO_ID_RE.match(video_id))


def search_terms(query: Optional[str]) -> List[str]:
    seen = []
    for term in _TERM_RE.findall((query or "").lower()):
        if term not in seen:
            seen.append(term)
    return seen[:MAX_SEARCH_TERMS]


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _owner_projection(video: Video, username, fullname, avatar) -> Optional[dict]:
    if username is None:
        return None
    return {"uid": video.owner_uid, "username": username, "fullname": fullname, "avatar": avatar}


class CatalogRepository:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    @contextmanager
    def _session(self):
        db = self._session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ---- query construction ----

    def _with_owner(self):
        """Video rows joined to the owner's public profile fields in one SELECT."""
        return (
            select(Video, User.username, User.fullname, User.avatar)
            .outerjoin(User, User.uid == Video.owner_uid)
        )

    def _text_match(self, dialect: str, terms: List[str]):
        """Return (filter, relevance score) for the given search terms."""
        if not terms:
            return false(), literal(0)
        if dialect == "postgresql":
            tsquery = func.to_tsquery(literal_column("'english'"), " | ".join(terms))
            document = search_document()
            return document.op("@@")(tsquery), func.ts_rank(document, tsquery)

        conditions = []
        weights = []
        for term in terms:
            pattern = _like_pattern(term)
            in_title = Video.title.ilike(pattern, escape="\\")
            in_description = Video.description.ilike(pattern, escape="\\")
            conditions.append(or_(in_title, in_description))
            weights.append(case((in_title, 2), else_=0) + case((in_description, 1), else_=0))
        return or_(*conditions), reduce(operator.add, weights)

    def _rows_to_dicts(self, rows) -> List[dict]:
        return [video.to_dict(owner=_owner_projection(video, username, fullname, avatar))
                for video, username, fullname, avatar in rows]

    # ---- reads ----

    def search_public(self, offset: int, limit: int, terms: List[str], sort_field: str, descending: bool) -> Tuple[List[dict], int]:
        with self._session() as db:
            dialect = db.get_bind().dialect.name
            filters = [Video.is_published.is_(True)]
            order_by = []
            if terms:
                match, score = self._text_match(dialect, terms)
                filters.append(match)
                order_by.append(score.desc())

            column = SORT_FIELDS.get(sort_field, SORT_FIELDS[DEFAULT_SORT_FIELD])
            order_by.append(column.desc() if descending else column.asc())
            order_by.append(Video.id.desc() if descending else Video.id.asc())

            total = db.execute(select(func.count()).select_from(Video).where(*filters)).scalar_one()
            if total == 0 or offset >= total:
                return [], total

            stmt = self._with_owner().where(*filters).order_by(*order_by).offset(offset).limit(limit)
            return self._rows_to_dicts(db.execute(stmt).all()), total

    def list_by_owner(self, owner_uid: str, offset: int, limit: int) -> Tuple[List[dict], int]:
        with self._session() as db:
            total = db.execute(
                select(func.count()).select_from(Video).where(Video.owner_uid == owner_uid)
            ).scalar_one()
            if total == 0 or offset >= total:
                return [], total
            stmt = (
                self._with_owner()
                .where(Video.owner_uid == owner_uid)
                .order_by(Video.created_at.desc(), Video.id.desc())
                .offset(offset)
                .limit(limit)
            )
            return self._rows_to_dicts(db.execute(stmt).all()), total

    def fetch_with_owner(self, video_id: str) -> Optional[dict]:
        with self._session() as db:
            row = db.execute(self._with_owner().where(Video.id == video_id)).first()
            if row is None:
                return None
            return self._rows_to_dicts([row])[0]

    def get_owner_uid(self, video_id: str) -> Optional[str]:
        with self._session() as db:
            return db.execute(select(Video.owner_uid).where(Video.id == video_id)).scalar_one_or_none()

    def get_media_refs(self, video_id: str) -> Optional[Dict[str, str]]:
        with self._session() as db:
            row = db.execute(
                select(Video.video_file_id, Video.thumbnail_id).where(Video.id == video_id)
            ).first()
            if row is None:
                return None
            return {"video": row[0], "thumbnail": row[1]}

    def count_likes(self, video_id: str) -> int:
        with self._session() as db:
            return db.execute(select(func.count()).select_from(Like).where(Like.video_id == video_id)).scalar_one()

    def count_comments(self, video_id: str) -> int:
        with self._session() as db:
            return db.execute(select(func.count()).select_from(Comment).where(Comment.video_id == video_id)).scalar_one()

    def watch_history(self, user_uid: str, limit: int) -> List[dict]:
        with self._session() as db:
            stmt = (
                self._with_owner()
                .join(WatchHistory, WatchHistory.video_id == Video.id)
                .where(WatchHistory.user_uid == user_uid, Video.is_published.is_(True))
                .order_by(WatchHistory.watched_at.desc(), Video.id.desc())
                .limit(limit)
            )
            return self._rows_to_dicts(db.execute(stmt).all())

    # ---- writes ----

    def insert_video(self, values: dict) -> str:
        with self._session() as db:
            video = Video(**values)
            db.add(video)
            db.commit()
            return values["id"]

    def update_video(self, video_id: str, values: dict) -> bool:
        with self._session() as db:
            result = db.execute(update(Video).where(Video.id == video_id).values(**values))
            db.commit()
            return result.rowcount > 0

    def toggle_published(self, video_id: str) -> Optional[bool]:
        with self._session() as db:
            result = db.execute(
                update(Video)
                .where(Video.id == video_id)
                .values(is_published=~Video.is_published)
            )
            db.commit()
            if result.rowcount == 0:
                return None
            return db.execute(select(Video.is_published).where(Video.id == video_id)).scalar_one_or_none()

    def delete_video(self, video_id: str) -> bool:
        with self._session() as db:
            result = db.execute(delete(Video).where(Video.id == video_id))
            db.commit()
            return result.rowcount > 0

    def increment_views(self, video_id: str) -> None:
        with self._session() as db:
            db.execute(
                update(Video)
                .where(Video.id == video_id)
                .values(views=Video.views + 1, updated_at=Video.updated_at)
            )
            db.commit()

    def add_watch_history(self, user_uid: str, video_id: str) -> None:
        with self._session() as db:
            result = db.execute(
                update(WatchHistory)
                .where(WatchHistory.user_uid == user_uid, WatchHistory.video_id == video_id)
                .values(watched_at=func.now())
            )
            if result.rowcount == 0:
                db.add(WatchHistory(id=uuid.uuid4().hex, user_uid=user_uid, video_id=video_id))
            try:
                db.commit()
            except IntegrityError:
                # A concurrent request recorded the same pair first
                db.rollback()

    def delete_engagement(self, video_id: str) -> Dict[str, int]:
        with self._session() as db:
            likes = db.execute(delete(Like).where(Like.video_id == video_id)).rowcount
            comments = db.execute(delete(Comment).where(Comment.video_id == video_id)).rowcount
            history = db.execute(delete(WatchHistory).where(WatchHistory.video_id == video_id)).rowcount
            db.commit()
        logger.info(f"[catalog] cascade cleanup for {video_id}: likes={likes} comments={comments} history={history}")
        return {"likes": likes, "comments": comments, "history": history}
