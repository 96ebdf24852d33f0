"""Bearer-key authentication and per-stream rate limiting for the sync API."""

import os
import secrets
import logging

from fastapi import HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

DEFAULT_SYNC_RATE_LIMIT = "60/minute"

bearer_scheme = HTTPBearer()


def stream_rate_key(request: Request) -> str:
    """One rate limit bucket per client address and stream."""
    connector_id = request.path_params.get("connector_id", "")
    resource = request.path_params.get("resource", "")
    return f"{get_remote_address(request)}:{connector_id}/{resource}"


limiter = Limiter(key_func=stream_rate_key)


def sync_rate_limit() -> str:
    """Limit applied to fetch-next calls, e.g. ``"60/minute"``."""
    return os.getenv("SYNC_RATE_LIMIT", DEFAULT_SYNC_RATE_LIMIT)


async def require_api_key(
    credentials: HTTPAuthorizationCredentials = Security(bearer_scheme),
) -> str:
    """Check the bearer token against the API_KEY environment variable.

    Raises:
        HTTPException: 500 when no key is configured, 401 on mismatch.
    """
    configured = os.getenv("API_KEY")
    if not configured:
        logger.error("API_KEY is not set, refusing all stream requests")
        raise HTTPException(status_code=500, detail="Server configuration error")
    if not secrets.compare_digest(credentials.credentials, configured):
        logger.warning("Rejected stream request with an invalid API key")
        raise HTTPException(status_code=401, detail="Invalid API key")
    return credentials.credentials
