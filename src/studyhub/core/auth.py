"""
Cron Trigger Authentication

External schedulers call the job trigger endpoint with a shared secret:

    Authorization: Bearer <CRON_SECRET>

When CRON_SECRET is unset the endpoint is open, which is only acceptable for
local development; a warning is logged at import time outside development.
"""

import logging
import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from studyhub.core.config import settings

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=False,
    description="Shared cron secret",
)

if not settings.cron_secret and not settings.is_development:
    logger.warning("SECURITY: CRON_SECRET is not set, the job trigger endpoint is unauthenticated")


async def verify_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> None:
    """
    FastAPI dependency guarding the cron trigger endpoints.

    Raises:
        HTTPException 401: If a secret is configured and the request does not
            carry it
    """
    expected = settings.cron_secret
    if not expected:
        return

    if credentials is None or not secrets.compare_digest(
        credentials.credentials.encode(), expected.encode()
    ):
        logger.warning("Rejected cron trigger request with missing or invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"success": False, "error": "Invalid cron secret"},
            headers={"WWW-Authenticate": "Bearer"},
        )
