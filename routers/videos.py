import os
import tempfile
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import JSONResponse

from core.auth import get_current_user_uid, get_optional_user_uid
from core.config import MAX_VIDEO_SIZE_BYTES, MAX_THUMBNAIL_SIZE_BYTES
from utils.blob_store import LocalPayload
from utils.catalog_query import CatalogQueryEngine, normalize_list_params
from utils.ingestion import IngestionSaga, VideoMetadata, VideoUpdate

router = APIRouter(prefix="/assets", tags=["assets"])

_CHUNK = 1024 * 1024


def get_ingestion(request: Request) -> IngestionSaga:
    return request.app.state.ingestion


def get_catalog(request: Request) -> CatalogQueryEngine:
    return request.app.state.catalog


async def _spool(upload: Optional[UploadFile], max_bytes: int) -> Optional[LocalPayload]:
    """Copy an upload to a temp file. Reading stops one byte past the ceiling so oversize files are rejected cheaply."""
    if upload is None or not (upload.filename or "").strip():
        return None
    ext = (os.path.splitext(upload.filename or "")[1] or "")[:6]
    fd, path = tempfile.mkstemp(prefix="upload-", suffix=ext)
    size = 0
    try:
        with os.fdopen(fd, "wb") as out:
            while size <= max_bytes:
                chunk = await upload.read(_CHUNK)
                if not chunk:
                    break
                out.write(chunk)
                size += len(chunk)
    except Exception:
        try:
            os.remove(path)
        except OSError:
            pass
        raise
    finally:
        await upload.close()
    return LocalPayload(path=path, content_type=upload.content_type or "", size=size, filename=upload.filename or "")


async def _spool_pair(video: Optional[UploadFile], thumbnail: Optional[UploadFile]):
    video_payload = await _spool(video, MAX_VIDEO_SIZE_BYTES)
    try:
        thumbnail_payload = await _spool(thumbnail, MAX_THUMBNAIL_SIZE_BYTES)
    except Exception:
        if video_payload is not None:
            video_payload.discard()
        raise
    return video_payload, thumbnail_payload


@router.post("")
async def upload_video(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    duration: Optional[str] = Form(None),
    video: Optional[UploadFile] = File(None),
    thumbnail: Optional[UploadFile] = File(None),
    uid: str = Depends(get_current_user_uid),
    ingestion: IngestionSaga = Depends(get_ingestion),
):
    """Upload a video and its thumbnail; the video starts unpublished."""
    video_payload, thumbnail_payload = await _spool_pair(video, thumbnail)
    created = await ingestion.create(
        uid,
        VideoMetadata(title=title, description=description, duration=duration),
        video_payload,
        thumbnail_payload,
    )
    return JSONResponse(created, status_code=201)


@router.get("")
async def list_videos(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    q: Optional[str] = Query(None),
    query: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    catalog: CatalogQueryEngine = Depends(get_catalog),
):
    params = normalize_list_params(page=page, limit=limit, query=q if q is not None else query,
                                   sort_by=sort_by, sort_order=sort_order)
    return await catalog.list_public(params)


@router.get("/mine")
async def list_my_videos(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    uid: str = Depends(get_current_user_uid),
    catalog: CatalogQueryEngine = Depends(get_catalog),
):
    """The caller's own videos, unpublished ones included."""
    return await catalog.list_owned(uid, normalize_list_params(page=page, limit=limit))


@router.get("/history")
async def get_watch_history(
    limit: Optional[str] = Query(None),
    uid: str = Depends(get_current_user_uid),
    catalog: CatalogQueryEngine = Depends(get_catalog),
):
    return {"items": await catalog.watch_history(uid, limit)}


@router.get("/{video_id}")
async def get_video(
    video_id: str,
    uid: Optional[str] = Depends(get_optional_user_uid),
    catalog: CatalogQueryEngine = Depends(get_catalog),
):
    return await catalog.get(video_id, uid)


@router.put("/{video_id}")
async def update_video(
    video_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    video: Optional[UploadFile] = File(None),
    thumbnail: Optional[UploadFile] = File(None),
    uid: str = Depends(get_current_user_uid),
    ingestion: IngestionSaga = Depends(get_ingestion),
):
    video_payload, thumbnail_payload = await _spool_pair(video, thumbnail)
    return await ingestion.update(
        uid,
        video_id,
        VideoUpdate(title=title, description=description),
        video_payload,
        thumbnail_payload,
    )


@router.patch("/{video_id}/publish")
async def toggle_publish(
    video_id: str,
    uid: str = Depends(get_current_user_uid),
    ingestion: IngestionSaga = Depends(get_ingestion),
):
    return await ingestion.toggle_publish(uid, video_id)


@router.delete("/{video_id}")
async def delete_video(
    video_id: str,
    uid: str = Depends(get_current_user_uid),
    ingestion: IngestionSaga = Depends(get_ingestion),
):
    return await ingestion.delete(uid, video_id)
