import os
import json
import uuid
import shutil
import time
import subprocess
from dataclasses import dataclass
from datetime import datetime as _dt
from typing import Optional

from botocore.exceptions import ClientError

from core.config import s3, R2_BUCKET, R2_PUBLIC_BASE_URL, STATIC_DIR, FFPROBE_TIMEOUT_SEC, PRESIGN_TTL_SEC, logger

DELETED = "deleted"
NOT_FOUND = "not_found"
ERROR = "error"

_EXT_BY_TYPE = {
    "video/mp4": ".mp4",
    "video/mpeg": ".mpeg",
    "video/quicktime": ".mov",
    "video/webm": ".webm",
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


@dataclass
class LocalPayload:
    """An uploaded file spooled to local disk, waiting to be pushed to the blob store."""
    path: str
    content_type: str
    size: int
    filename: str = ""

    def discard(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as ex:
            logger.warning(f"[blob] failed to remove local payload {self.path}: {ex}")


@dataclass
class StoredBlob:
    external_id: str
    url: str
    duration: Optional[float] = None


def probe_duration(path: str) -> Optional[float]:
    """Return media duration in seconds using ffprobe, or None when unavailable."""
    ffprobe = shutil.which("ffprobe")
    if not ffprobe:
        return None
    try:
        cmd = [
            ffprobe,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_entries",
            "format=duration",
            str(path),
        ]
        proc = subprocess.run(
            cmd,
            capture_output=True,
            timeout=max(1.0, min(FFPROBE_TIMEOUT_SEC, 30.0)),
            check=False
        )
        if proc.returncode == 0 and proc.stdout:
            data = json.loads(proc.stdout)
            value = float((data.get("format") or {}).get("duration") or 0)
            return value if value > 0 else None
    except subprocess.TimeoutExpired:
        logger.warning(f"[blob] ffprobe timeout on {path}")
    except (json.JSONDecodeError, OSError, ValueError) as e:
        logger.warning(f"[blob] ffprobe error on {path}: {e}")
    return None


class BlobStore:
    """
    Contract shared by every store backend.

    put() pushes a local payload under a caller-chosen key and returns its
    external id, URL and probed duration (video payloads only). delete() is
    idempotent and reports "deleted", "not_found" or "error" without raising.
    """

    def new_key(self, folder: str, owner_uid: str, payload: LocalPayload) -> str:
        date_prefix = _dt.utcnow().strftime('%Y/%m/%d')
        ext = (os.path.splitext(payload.filename or '')[1] or '').lower()
        if not ext or len(ext) > 6:
            ext = _EXT_BY_TYPE.get(payload.content_type, '.bin')
        return f"{folder}/{owner_uid}/{date_prefix}/{uuid.uuid4().hex}{ext}"

    def put(self, payload: LocalPayload, key: str) -> StoredBlob:
        raise NotImplementedError

    def delete(self, external_id: str) -> str:
        raise NotImplementedError

    def url_for(self, external_id: str) -> str:
        """Current public URL for a stored object; empty when the stored URL should be kept."""
        return ""

    def _probe(self, payload: LocalPayload) -> Optional[float]:
        if not (payload.content_type or "").startswith("video/"):
            return None
        return probe_duration(payload.path)


class R2BlobStore(BlobStore):
    def __init__(self, resource, bucket: str, public_base_url: str = ""):
        self.resource = resource
        self.bucket = bucket
        self.public_base_url = (public_base_url or "").rstrip("/")
        # Presigned URLs are reused until shortly before they expire
        self._url_cache: dict[str, tuple[str, float]] = {}

    def url_for(self, external_id: str) -> str:
        if not external_id:
            return ""
        if self.public_base_url:
            return f"{self.public_base_url}/{external_id}"
        now = time.time()
        cached = self._url_cache.get(external_id)
        if cached and cached[1] > now:
            return cached[0]
        try:
            url = self.resource.meta.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": external_id},
                ExpiresIn=PRESIGN_TTL_SEC,
            )
        except Exception as ex:
            logger.warning(f"[blob] presigned url generation failed for {external_id}: {ex}")
            return ""
        if url:
            self._url_cache[external_id] = (url, now + max(1, PRESIGN_TTL_SEC // 2))
        return url

    def put(self, payload: LocalPayload, key: str) -> StoredBlob:
        duration = self._probe(payload)
        cc = "public, max-age=2592000"
        self.resource.Bucket(self.bucket).upload_file(
            Filename=payload.path,
            Key=key,
            ExtraArgs={"ContentType": payload.content_type, "CacheControl": cc},
        )
        logger.info(f"[blob] uploaded {key} ({payload.size} bytes)")
        url = self.url_for(key)
        if not url:
            raise RuntimeError(f"no URL available for {key}")
        return StoredBlob(external_id=key, url=url, duration=duration)

    def delete(self, external_id: str) -> str:
        if not external_id:
            return NOT_FOUND
        self._url_cache.pop(external_id, None)
        obj = self.resource.Object(self.bucket, external_id)
        try:
            obj.load()
        except ClientError as ce:
            if ce.response.get('Error', {}).get('Code') in ('NoSuchKey', '404', 'NotFound'):
                return NOT_FOUND
            logger.warning(f"[blob] head failed for {external_id}: {ce}")
            return ERROR
        except Exception as ex:
            logger.warning(f"[blob] head failed for {external_id}: {ex}")
            return ERROR
        try:
            obj.delete()
        except Exception as ex:
            logger.warning(f"[blob] delete failed for {external_id}: {ex}")
            return ERROR
        logger.info(f"[blob] deleted {external_id}")
        return DELETED


class LocalBlobStore(BlobStore):
    """Filesystem store under STATIC_DIR, used when R2 is not configured."""

    def __init__(self, root: str):
        self.root = root

    def _path_for(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.root, key))
        if not path.startswith(os.path.abspath(self.root) + os.sep):
            raise ValueError(f"key escapes store root: {key}")
        return path

    def put(self, payload: LocalPayload, key: str) -> StoredBlob:
        duration = self._probe(payload)
        local_path = self._path_for(key)
        os.makedirs(os.path.dirname(local_path), exist_ok=True)
        shutil.copyfile(payload.path, local_path)
        logger.info(f"Saved locally: {local_path}")
        return StoredBlob(external_id=key, url=f"/static/{key}", duration=duration)

    def delete(self, external_id: str) -> str:
        try:
            os.remove(self._path_for(external_id))
        except FileNotFoundError:
            return NOT_FOUND
        except (OSError, ValueError) as ex:
            logger.warning(f"[blob] delete failed for {external_id}: {ex}")
            return ERROR
        return DELETED


def build_blob_store() -> BlobStore:
    if s3 and R2_BUCKET:
        logger.info(f"[blob] using R2 bucket {R2_BUCKET}")
        return R2BlobStore(s3, R2_BUCKET, R2_PUBLIC_BASE_URL)
    logger.warning("[blob] R2 not configured - storing media under STATIC_DIR")
    return LocalBlobStore(STATIC_DIR)
