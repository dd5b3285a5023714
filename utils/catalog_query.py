"""
Catalog query engine: public listing, owner listing, single fetch, watch history.

Text search ordering: when a query is present, relevance is always the primary
sort key and the requested sort field only breaks ties.

Single fetch returns `views` as the stored value plus one while the real
increment runs detached. Concurrent viewers can therefore see the same number;
the stored counter converges once the increments land.
"""
import asyncio
import math
from dataclasses import dataclass
from typing import Optional

from core.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, logger
from core.errors import ValidationError, NotFound
from utils.background import fire_and_forget
from utils.blob_store import BlobStore
from utils.catalog import CatalogRepository, SORT_FIELDS, DEFAULT_SORT_FIELD, is_valid_video_id, search_terms


@dataclass
class ListParams:
    page: int
    limit: int
    query: str
    sort_by: str
    descending: bool

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def _as_int(raw, default: int) -> int:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return default


def normalize_list_params(page=None, limit=None, query=None, sort_by=None, sort_order=None) -> ListParams:
    """Clamp paging and fall back to createdAt desc for sort fields outside the allow-list."""
    page_num = max(1, _as_int(page, 1)) if page is not None else 1
    limit_num = _as_int(limit, DEFAULT_PAGE_SIZE) if limit is not None else DEFAULT_PAGE_SIZE
    limit_num = max(1, min(MAX_PAGE_SIZE, limit_num))

    field = (sort_by or "").strip()
    if field in SORT_FIELDS:
        descending = (sort_order or "").strip().lower() != "asc"
    else:
        field = DEFAULT_SORT_FIELD
        descending = True
    return ListParams(page=page_num, limit=limit_num, query=(query or "").strip(), sort_by=field, descending=descending)


def page_envelope(items, total: int, params: ListParams) -> dict:
    total_pages = math.ceil(total / params.limit) if total else 0
    return {
        "items": items,
        "totalCount": total,
        "totalPages": total_pages,
        "page": params.page,
        "limit": params.limit,
        "hasNext": params.page < total_pages,
        "hasPrev": params.page > 1 and total > 0,
    }


class CatalogQueryEngine:
    def __init__(self, repository: CatalogRepository, blob_store: Optional[BlobStore] = None):
        self.repository = repository
        self.blob_store = blob_store

    def _refresh_urls(self, item: dict) -> dict:
        """Swap stored URLs for current ones when the store signs URLs with an expiry."""
        if self.blob_store is None:
            return item
        for slot in ("videoFile", "thumbnail"):
            ref = item.get(slot) or {}
            url = self.blob_store.url_for(ref.get("externalId") or "")
            if url:
                ref["url"] = url
        return item

    async def list_public(self, params: ListParams) -> dict:
        terms = search_terms(params.query)
        if params.query and not terms:
            # Nothing searchable in the query (punctuation only)
            return page_envelope([], 0, params)
        items, total = await asyncio.to_thread(
            self.repository.search_public,
            params.offset,
            params.limit,
            terms,
            params.sort_by,
            params.descending,
        )
        logger.info(f"[catalog] list page={params.page} limit={params.limit} q={params.query!r} total={total}")
        return page_envelope([self._refresh_urls(i) for i in items], total, params)

    async def list_owned(self, owner_uid: str, params: ListParams) -> dict:
        items, total = await asyncio.to_thread(
            self.repository.list_by_owner, owner_uid, params.offset, params.limit
        )
        return page_envelope([self._refresh_urls(i) for i in items], total, params)

    async def get(self, video_id: str, viewer_uid: Optional[str] = None) -> dict:
        if not is_valid_video_id(video_id):
            raise ValidationError("Invalid video id")
        video = await asyncio.to_thread(self.repository.fetch_with_owner, video_id)
        if not video:
            raise NotFound()
        if not video["isPublished"] and video["ownerId"] != viewer_uid:
            raise NotFound()

        # Detached: the response neither waits for nor fails on these
        fire_and_forget(f"view increment for {video_id}", self.repository.increment_views, video_id)
        if viewer_uid:
            fire_and_forget(f"watch history for {viewer_uid}", self.repository.add_watch_history, viewer_uid, video_id)

        like_count, comment_count = await asyncio.gather(
            asyncio.to_thread(self.repository.count_likes, video_id),
            asyncio.to_thread(self.repository.count_comments, video_id),
        )
        video["views"] = (video.get("views") or 0) + 1
        video["likeCount"] = like_count
        video["commentCount"] = comment_count
        return self._refresh_urls(video)

    async def watch_history(self, user_uid: str, limit=None) -> list:
        limit_num = max(1, min(MAX_PAGE_SIZE, _as_int(limit, 50) if limit is not None else 50))
        items = await asyncio.to_thread(self.repository.watch_history, user_uid, limit_num)
        return [self._refresh_urls(i) for i in items]
