import os
import tempfile
import threading
import uuid
from datetime import datetime, timedelta

import jwt
import pytest

# Configuration is read at import time, so the environment is prepared first
_TMP = tempfile.mkdtemp(prefix="videotube-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TMP, 'default.db')}")
os.environ.setdefault("JWT_ACCESS_SECRET", "test-secret")
os.environ.setdefault("STATIC_DIR", os.path.join(_TMP, "static"))

from sqlalchemy.orm import sessionmaker  # noqa: E402

from core.config import JWT_ACCESS_SECRET, JWT_ALGORITHM  # noqa: E402
from core.database import build_engine, init_db  # noqa: E402
from models.engagement import Like, Comment  # noqa: E402
from models.user import User  # noqa: E402
from models.video import Video  # noqa: E402
from utils.blob_store import BlobStore, LocalPayload, StoredBlob, DELETED, NOT_FOUND  # noqa: E402
from utils.catalog import CatalogRepository  # noqa: E402
from utils.catalog_query import CatalogQueryEngine  # noqa: E402
from utils.ingestion import IngestionSaga  # noqa: E402

MIB = 1024 * 1024


class FakeBlobStore(BlobStore):
    """In-memory store that records every call and can be told to fail per folder."""

    def __init__(self, duration=42.5):
        self.duration = duration
        self.objects = {}
        self.put_calls = []
        self.delete_calls = []
        self.fail_folders = set()
        self.payload_existed = []
        self._lock = threading.Lock()

    @property
    def calls(self):
        return len(self.put_calls) + len(self.delete_calls)

    def put(self, payload: LocalPayload, key: str) -> StoredBlob:
        with self._lock:
            self.put_calls.append(key)
            self.payload_existed.append(os.path.exists(payload.path))
        if key.split("/", 1)[0] in self.fail_folders:
            raise RuntimeError("store unavailable")
        with self._lock:
            self.objects[key] = payload.size
        duration = self.duration if payload.content_type.startswith("video/") else None
        return StoredBlob(external_id=key, url=f"https://blobs.test/{key}", duration=duration)

    def delete(self, external_id: str) -> str:
        with self._lock:
            self.delete_calls.append(external_id)
            if external_id in self.objects:
                del self.objects[external_id]
                return DELETED
        return NOT_FOUND


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'catalog.db'}")
    init_db(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def repository(session_factory):
    return CatalogRepository(session_factory)


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def saga(repository, blob_store):
    return IngestionSaga(repository, blob_store)


@pytest.fixture
def catalog(repository, blob_store):
    return CatalogQueryEngine(repository, blob_store)


@pytest.fixture
def make_payload(tmp_path):
    def _make(content_type="video/mp4", size=10 * MIB, name=None):
        ext = ".mp4" if content_type.startswith("video/") else ".png"
        path = tmp_path / (name or f"payload-{uuid.uuid4().hex}{ext}")
        with open(path, "wb") as f:
            f.truncate(size)
        return LocalPayload(path=str(path), content_type=content_type, size=size, filename=path.name)
    return _make


@pytest.fixture
def add_user(session_factory):
    def _add(uid, username=None, fullname=None, avatar=None):
        db = session_factory()
        try:
            db.add(User(uid=uid, username=username or uid, fullname=fullname or uid.title(),
                        avatar=avatar or f"https://cdn.test/{uid}.png"))
            db.commit()
        finally:
            db.close()
        return uid
    return _add


@pytest.fixture
def add_video(session_factory):
    base = datetime(2024, 1, 1, 12, 0, 0)
    counter = {"n": 0}

    def _add(owner_uid, title="Sample clip", description="A sample description for tests",
             published=True, views=0, duration=60.0, created_offset=None):
        counter["n"] += 1
        offset = counter["n"] if created_offset is None else created_offset
        video_id = uuid.uuid4().hex
        db = session_factory()
        try:
            db.add(Video(
                id=video_id,
                owner_uid=owner_uid,
                video_file_id=f"videos/{owner_uid}/{video_id}.mp4",
                video_file_url=f"https://blobs.test/videos/{owner_uid}/{video_id}.mp4",
                thumbnail_id=f"thumbnails/{owner_uid}/{video_id}.png",
                thumbnail_url=f"https://blobs.test/thumbnails/{owner_uid}/{video_id}.png",
                title=title,
                description=description,
                duration=duration,
                views=views,
                is_published=published,
                created_at=base + timedelta(minutes=offset),
                updated_at=base + timedelta(minutes=offset),
            ))
            db.commit()
        finally:
            db.close()
        return video_id
    return _add


@pytest.fixture
def add_engagement(session_factory):
    def _add(video_id, likes=0, comments=0):
        db = session_factory()
        try:
            for _ in range(likes):
                db.add(Like(id=uuid.uuid4().hex, video_id=video_id, owner_uid="fan"))
            for i in range(comments):
                db.add(Comment(id=uuid.uuid4().hex, video_id=video_id, owner_uid="fan", content=f"comment {i}"))
            db.commit()
        finally:
            db.close()
    return _add


def auth_headers(uid):
    token = jwt.encode({"_id": uid}, JWT_ACCESS_SECRET, algorithm=JWT_ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth():
    return auth_headers
