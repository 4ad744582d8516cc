import logging
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import SYNC_API_KEY
from .webhook_security import constant_time_compare

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

_warned_open_access = False


async def require_sync_api_key(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """Bearer check for the operator-facing sync routes"""
    global _warned_open_access

    if not SYNC_API_KEY:
        if not _warned_open_access:
            logger.warning("⚠️ SYNC_API_KEY not set, sync routes are unauthenticated (development only)")
            _warned_open_access = True
        return

    if not credentials:
        logger.error("❌ No credentials provided")
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    if not constant_time_compare(credentials.credentials, SYNC_API_KEY):
        logger.warning("🚫 Invalid sync API key")
        raise HTTPException(status_code=401, detail="Invalid API key")
