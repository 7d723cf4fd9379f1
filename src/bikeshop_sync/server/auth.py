"""
Authentication Middleware

Simple API key authentication for admin endpoints.
"""

from fastapi import Header, HTTPException, status

from bikeshop_sync.config.settings import settings


async def verify_api_key(x_api_key: str = Header(..., description="Admin API key")):
    """
    Verify API key from X-API-Key header.

    Raises:
        HTTPException: 503 when ADMIN_API_KEY is not set, 401 on a wrong key

    Returns:
        True if authentication successful
    """
    expected_key = settings.admin_api_key

    if not expected_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin API not configured (ADMIN_API_KEY not set in environment)",
        )

    if x_api_key != expected_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return True
