"""
Request authentication helpers
"""

from typing import Optional

from fastapi import Header, HTTPException, Security
from fastapi.security import APIKeyHeader

from app.core.config import settings

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> Optional[str]:
    """
    Verify the X-API-Key header.

    The check is skipped when API_KEY is not configured (local development).

    Raises:
        HTTPException: 401 if the key is missing or wrong
    """
    if not settings.API_KEY:
        return None
    if api_key != settings.API_KEY:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return api_key


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Caller identity from the X-User-Id header, or None if unauthenticated"""
    if x_user_id is None or not x_user_id.strip():
        return None
    return x_user_id.strip()


def is_document_owner(document, user_id: Optional[str]) -> bool:
    return user_id is not None and document.owner_id == user_id
