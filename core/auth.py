from typing import Optional
from fastapi import Request
import jwt

from core.config import logger, JWT_ACCESS_SECRET, JWT_ALGORITHM
from core.errors import Unauthorized


def _token_from_request(request: Request) -> Optional[str]:
    auth_header = request.headers.get("authorization") or request.headers.get("Authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        if token:
            return token
    # Browser clients send the access token as a cookie
    token = (request.cookies.get("accessToken") or "").strip()
    return token or None


def get_uid_from_request(request: Request) -> Optional[str]:
    token = _token_from_request(request)
    if not token:
        return None
    if not JWT_ACCESS_SECRET:
        logger.warning("JWT_ACCESS_SECRET not set; rejecting bearer token")
        return None
    try:
        payload = jwt.decode(token, JWT_ACCESS_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as ex:
        logger.warning(f"Token verification failed: {ex}")
        return None
    uid = payload.get("_id") or payload.get("sub")
    return str(uid) if uid else None


async def get_current_user_uid(request: Request) -> str:
    uid = get_uid_from_request(request)
    if not uid:
        raise Unauthorized()
    return uid


async def get_optional_user_uid(request: Request) -> Optional[str]:
    return get_uid_from_request(request)
