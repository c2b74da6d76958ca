"""Provides API key-based security for FastAPI endpoints."""

import logging

from fastapi import Depends
from fastapi import HTTPException
from fastapi.security import APIKeyHeader

from report_assist.core.config import settings

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key")


async def verify_api_key(key: str = Depends(api_key_header)) -> bool:
    """Verifies the provided API key against the server's configured API key.

    Used as a FastAPI dependency to protect routes.

    Raises:
        HTTPException: 403 if the key does not match, including when the server
                       has no API key configured.
    """
    if not settings.api_key:
        logger.critical(
            "CRITICAL: API key security is enforced, but no API_KEY is configured "
            "on the server. All API requests requiring this key will be denied."
        )

    if not settings.api_key or key != settings.api_key:
        raise HTTPException(status_code=403, detail="Invalid API Key")
    return True
