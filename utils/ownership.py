import asyncio
from typing import Optional

from core.config import logger
from core.errors import ValidationError, Forbidden, NotFound
from utils.catalog import CatalogRepository, is_valid_video_id


async def require_owner(repository: CatalogRepository, video_id: str, actor_uid: Optional[str]) -> str:
    """
    Re-read the current owner of a video and compare it with the acting principal.

    Must run before any store or database side effect of a mutation. The owner
    is always taken from the database, never from the request or a cache.
    """
    if not is_valid_video_id(video_id):
        raise ValidationError("Invalid video id")
    owner_uid = await asyncio.to_thread(repository.get_owner_uid, video_id)
    if owner_uid is None:
        raise NotFound()
    if not actor_uid or owner_uid != actor_uid:
        logger.warning(f"[ownership] {actor_uid} attempted to modify video {video_id} owned by {owner_uid}")
        raise Forbidden("You are not allowed to modify this video")
    return owner_uid
