"""
Worker trigger authentication dependencies.
"""

import hmac

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

from app.core.config import settings

# API Key header name
API_KEY_HEADER = "X-Worker-API-Key"

# Security scheme
api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def get_worker_auth(api_key: str | None = Security(api_key_header)) -> bool:
    """
    Verify worker API key from header.

    Args:
        api_key: API key from X-Worker-API-Key header

    Returns:
        True if authenticated

    Raises:
        HTTPException: If API key is missing or invalid
        RuntimeError: If in production without worker_api_key configured
    """
    # Production safety: the sweep trigger must not be public in production
    if settings.app_env == "production" and not settings.worker_api_key:
        raise RuntimeError(
            "WORKER_API_KEY must be set in production environment. "
            "Set WORKER_API_KEY environment variable or set APP_ENV=dev for development."
        )

    # If no worker_api_key is configured, allow access (dev mode only)
    if not settings.worker_api_key:
        return True

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing API key. Provide X-Worker-API-Key header.",
        )

    if not hmac.compare_digest(api_key, settings.worker_api_key):
        raise HTTPException(status_code=403, detail="Invalid API key.")

    return True
