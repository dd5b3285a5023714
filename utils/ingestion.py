"""
Video ingestion saga.

Turns local payloads + metadata into exactly one committed video row, or leaves
no residue behind. Ordering for every path:

    validate -> ownership (mutations) -> blob uploads -> database write -> readback

A failure after uploads deletes whatever reached the store before the error is
raised. Each public method runs under asyncio.shield so a disconnecting client
cannot interrupt compensation halfway. A saga whose caller went away is handed
to utils.background so its outcome is still logged. Local payloads are removed
on every exit path.
"""
import asyncio
from dataclasses import dataclass
from typing import Optional, Dict, Iterable

from core.config import logger
from core.errors import ValidationError, NotFound, UploadFailure, PersistenceFailure, AmbiguousState
from utils.background import fire_and_forget, track
from utils.blob_store import BlobStore, LocalPayload, StoredBlob, ERROR
from utils.catalog import CatalogRepository, new_video_id
from utils.media_validation import (
    VIDEO_SLOT,
    THUMBNAIL_SLOT,
    validate_title,
    validate_description,
    validate_payload,
    parse_declared_duration,
)
from utils.ownership import require_owner

_FOLDERS = {VIDEO_SLOT: "videos", THUMBNAIL_SLOT: "thumbnails"}
_COLUMNS = {
    VIDEO_SLOT: ("video_file_id", "video_file_url"),
    THUMBNAIL_SLOT: ("thumbnail_id", "thumbnail_url"),
}


@dataclass
class VideoMetadata:
    title: Optional[str]
    description: Optional[str]
    # Only used when the store cannot probe the upload
    duration: Optional[str] = None


@dataclass
class VideoUpdate:
    """Partial update: a field left as None is not touched."""
    title: Optional[str] = None
    description: Optional[str] = None

    def is_empty(self) -> bool:
        return self.title is None and self.description is None

    def to_values(self) -> dict:
        values = {}
        if self.title is not None:
            values["title"] = self.title.strip()
        if self.description is not None:
            values["description"] = self.description.strip()
        return values


def _discard(*payloads: Optional[LocalPayload]) -> None:
    for payload in payloads:
        if payload is not None:
            payload.discard()


def _check(result) -> None:
    ok, err = result
    if not ok:
        raise ValidationError(err)


async def _shielded(label: str, coro):
    """Await a saga that keeps running if the caller is cancelled."""
    task = asyncio.ensure_future(coro)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        # Nobody awaits the saga any more; its outcome still gets logged
        track(label, task)
        raise


class IngestionSaga:
    def __init__(self, repository: CatalogRepository, blob_store: BlobStore):
        self.repository = repository
        self.blob_store = blob_store

    # ---- public entry points ----

    async def create(self, owner_uid: str, metadata: VideoMetadata,
                     video: Optional[LocalPayload], thumbnail: Optional[LocalPayload]) -> dict:
        return await _shielded(f"create by {owner_uid}", self._create(owner_uid, metadata, video, thumbnail))

    async def update(self, actor_uid: str, video_id: str, patch: VideoUpdate,
                     video: Optional[LocalPayload] = None, thumbnail: Optional[LocalPayload] = None) -> dict:
        return await _shielded(f"update of {video_id}", self._update(actor_uid, video_id, patch, video, thumbnail))

    async def delete(self, actor_uid: str, video_id: str) -> dict:
        return await _shielded(f"delete of {video_id}", self._delete(actor_uid, video_id))

    async def toggle_publish(self, actor_uid: str, video_id: str) -> dict:
        await require_owner(self.repository, video_id, actor_uid)
        state = await asyncio.to_thread(self.repository.toggle_published, video_id)
        if state is None:
            raise NotFound()
        logger.info(f"[ingest] video {video_id} published={state}")
        return {"id": video_id, "isPublished": bool(state)}

    # ---- saga bodies ----

    async def _create(self, owner_uid, metadata, video, thumbnail) -> dict:
        try:
            _check(validate_title(metadata.title))
            _check(validate_description(metadata.description))
            ok, err, declared_duration = parse_declared_duration(metadata.duration)
            if not ok:
                raise ValidationError(err)
            _check(validate_payload(video, VIDEO_SLOT, required=True))
            _check(validate_payload(thumbnail, THUMBNAIL_SLOT, required=True))

            stored = await self._upload_slots(owner_uid, {VIDEO_SLOT: video, THUMBNAIL_SLOT: thumbnail})

            duration = stored[VIDEO_SLOT].duration or declared_duration
            if not duration:
                logger.error(f"[ingest] no duration for upload by {owner_uid}: probe failed and none declared")
                await self._delete_blobs(b.external_id for b in stored.values())
                raise UploadFailure("Could not determine video duration")

            video_id = new_video_id()
            values = {
                "id": video_id,
                "owner_uid": owner_uid,
                "title": metadata.title.strip(),
                "description": metadata.description.strip(),
                "duration": float(duration),
                "views": 0,
                "is_published": False,
            }
            values.update(self._media_columns(stored))

            try:
                await asyncio.to_thread(self.repository.insert_video, values)
            except Exception as ex:
                logger.error(f"[ingest] insert failed for {video_id}: {ex}")
                await self._delete_blobs(b.external_id for b in stored.values())
                raise PersistenceFailure() from ex

            created = await asyncio.to_thread(self.repository.fetch_with_owner, video_id)
            if not created:
                # The row may exist; deleting blobs now could orphan a live record
                logger.error(f"[ingest] video {video_id} not readable after insert")
                raise AmbiguousState()

            logger.info(
                f"[ingest] video {video_id} created by {owner_uid}: "
                f"video={created['videoFile']['url']}, thumbnail={created['thumbnail']['url']}"
            )
            return created
        finally:
            _discard(video, thumbnail)

    async def _update(self, actor_uid, video_id, patch, video, thumbnail) -> dict:
        try:
            await require_owner(self.repository, video_id, actor_uid)

            if patch.title is not None:
                _check(validate_title(patch.title))
            if patch.description is not None:
                _check(validate_description(patch.description))
            _check(validate_payload(video, VIDEO_SLOT, required=False))
            _check(validate_payload(thumbnail, THUMBNAIL_SLOT, required=False))

            slots = {slot: p for slot, p in ((VIDEO_SLOT, video), (THUMBNAIL_SLOT, thumbnail)) if p is not None}
            if patch.is_empty() and not slots:
                raise ValidationError("Nothing to update")

            values = patch.to_values()
            previous: Dict[str, str] = {}
            stored: Dict[str, StoredBlob] = {}
            if slots:
                previous = await asyncio.to_thread(self.repository.get_media_refs, video_id) or {}
                stored = await self._upload_slots(actor_uid, slots)
                values.update(self._media_columns(stored))
                if VIDEO_SLOT in stored and stored[VIDEO_SLOT].duration:
                    values["duration"] = float(stored[VIDEO_SLOT].duration)

            try:
                updated = await asyncio.to_thread(self.repository.update_video, video_id, values)
            except Exception as ex:
                logger.error(f"[ingest] update failed for {video_id}: {ex}")
                await self._delete_blobs(b.external_id for b in stored.values())
                raise PersistenceFailure() from ex

            if not updated:
                # Deleted between the ownership check and the write
                logger.warning(f"[ingest] video {video_id} vanished during update")
                await self._delete_blobs(b.external_id for b in stored.values())
                raise NotFound()

            # Old objects go only after the row points at the new ones
            replaced = [previous[slot] for slot in stored if previous.get(slot)]
            if replaced:
                await self._delete_blobs(replaced)

            result = await asyncio.to_thread(self.repository.fetch_with_owner, video_id)
            if not result:
                raise NotFound()
            logger.info(f"[ingest] video {video_id} updated by {actor_uid}: fields={sorted(values)}")
            return result
        finally:
            _discard(video, thumbnail)

    async def _delete(self, actor_uid, video_id) -> dict:
        await require_owner(self.repository, video_id, actor_uid)

        refs = await asyncio.to_thread(self.repository.get_media_refs, video_id)
        if refs is None:
            raise NotFound()
        await self._delete_blobs(refs.values())

        removed = await asyncio.to_thread(self.repository.delete_video, video_id)
        if not removed:
            raise NotFound()
        logger.info(f"[ingest] video {video_id} deleted by {actor_uid}")

        fire_and_forget(f"cascade cleanup for {video_id}", self.repository.delete_engagement, video_id)
        return {"deletedId": video_id}

    # ---- steps ----

    def _media_columns(self, stored: Dict[str, StoredBlob]) -> dict:
        values = {}
        for slot, blob in stored.items():
            id_col, url_col = _COLUMNS[slot]
            values[id_col] = blob.external_id
            values[url_col] = blob.url
        return values

    async def _put(self, payload: LocalPayload, key: str) -> StoredBlob:
        try:
            blob = await asyncio.to_thread(self.blob_store.put, payload, key)
        finally:
            payload.discard()
        if not blob or not blob.url or not blob.external_id:
            raise RuntimeError(f"store returned no reference for {key}")
        return blob

    async def _upload_slots(self, owner_uid: str, slots: Dict[str, LocalPayload]) -> Dict[str, StoredBlob]:
        """Upload every slot concurrently; on any failure remove whatever was stored."""
        keys = {slot: self.blob_store.new_key(_FOLDERS[slot], owner_uid, payload) for slot, payload in slots.items()}
        results = await asyncio.gather(
            *(self._put(payload, keys[slot]) for slot, payload in slots.items()),
            return_exceptions=True,
        )

        stored: Dict[str, StoredBlob] = {}
        failed = []
        for slot, result in zip(slots, results):
            if isinstance(result, BaseException):
                logger.error(f"[ingest] {slot} upload failed for {owner_uid}: {result}")
                failed.append(slot)
            else:
                stored[slot] = result

        if failed:
            # A failed put leaves its key in an unknown state, so it is deleted too
            await self._delete_blobs([b.external_id for b in stored.values()] + [keys[s] for s in failed])
            raise UploadFailure()
        return stored

    async def _delete_blobs(self, external_ids: Iterable[str]) -> None:
        """Best-effort concurrent delete; failures are logged, never raised."""
        ids = [i for i in external_ids if i]
        if not ids:
            return
        results = await asyncio.gather(
            *(asyncio.to_thread(self.blob_store.delete, i) for i in ids),
            return_exceptions=True,
        )
        for external_id, outcome in zip(ids, results):
            if isinstance(outcome, BaseException) or outcome == ERROR:
                logger.error(f"[ingest] failed to delete blob {external_id}: {outcome}")
            else:
                logger.info(f"[ingest] blob {external_id}: {outcome}")
