"""
Validation for video metadata and uploaded payloads.
Every check returns (is_valid, error_message) and never touches the blob store.
"""
import math
from typing import Optional, Tuple

from core.config import (
    TITLE_MIN_LEN,
    TITLE_MAX_LEN,
    DESCRIPTION_MIN_LEN,
    DESCRIPTION_MAX_LEN,
    ALLOWED_VIDEO_TYPES,
    ALLOWED_IMAGE_TYPES,
    MAX_VIDEO_SIZE_BYTES,
    MAX_VIDEO_SIZE_MB,
    MAX_THUMBNAIL_SIZE_BYTES,
    MAX_THUMBNAIL_SIZE_MB,
)
from utils.blob_store import LocalPayload

VIDEO_SLOT = "video"
THUMBNAIL_SLOT = "thumbnail"

_SLOT_RULES = {
    VIDEO_SLOT: (ALLOWED_VIDEO_TYPES, MAX_VIDEO_SIZE_BYTES, MAX_VIDEO_SIZE_MB),
    THUMBNAIL_SLOT: (ALLOWED_IMAGE_TYPES, MAX_THUMBNAIL_SIZE_BYTES, MAX_THUMBNAIL_SIZE_MB),
}


def validate_title(title: Optional[str]) -> Tuple[bool, str]:
    trimmed = (title or "").strip()
    if len(trimmed) < TITLE_MIN_LEN or len(trimmed) > TITLE_MAX_LEN:
        return False, f"Title must be between {TITLE_MIN_LEN} and {TITLE_MAX_LEN} characters"
    return True, ""


def validate_description(description: Optional[str]) -> Tuple[bool, str]:
    trimmed = (description or "").strip()
    if len(trimmed) < DESCRIPTION_MIN_LEN or len(trimmed) > DESCRIPTION_MAX_LEN:
        return False, f"Description must be between {DESCRIPTION_MIN_LEN} and {DESCRIPTION_MAX_LEN} characters"
    return True, ""


def parse_declared_duration(raw) -> Tuple[bool, str, Optional[float]]:
    """
    Client-declared duration is optional. When present it must be a positive,
    finite number; the store probe still wins when it yields a value.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return True, "", None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return False, "Duration must be a positive number", None
    if not math.isfinite(value) or value <= 0:
        return False, "Duration must be a positive number", None
    return True, "", value


def validate_payload(payload: Optional[LocalPayload], slot: str, required: bool) -> Tuple[bool, str]:
    """Check presence, declared media type and size ceiling for one upload slot."""
    if payload is None:
        if required:
            return False, "Video and thumbnail files are required"
        return True, ""

    allowed_types, max_bytes, max_mb = _SLOT_RULES[slot]
    content_type = (payload.content_type or "").split(";")[0].strip().lower()
    if content_type not in allowed_types:
        return False, f"Invalid {slot} file type. Allowed: {', '.join(allowed_types)}"
    if payload.size <= 0:
        return False, f"{slot.capitalize()} file is empty"
    if payload.size > max_bytes:
        return False, f"{slot.capitalize()} file size exceeds {max_mb}MB limit"
    return True, ""
