"""
API key authentication for FastAPI routes.
"""

import hmac
from typing import Optional
from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader
import logging

logger = logging.getLogger(__name__)
api_key_header = APIKeyHeader(name="x-api-key", auto_error=False)


async def verify_api_key(request: Request, api_key: Optional[str] = Security(api_key_header)) -> str:
    """
    Dependency that checks the x-api-key header against the configured key.

    Raises:
        HTTPException: 401 if the header is missing, 403 if it does not match
    """
    if not api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="API key is required")

    expected_api_key = request.app.state.settings.api_key
    if not expected_api_key or not hmac.compare_digest(api_key, expected_api_key):
        logger.warning(f"Rejected request with invalid API key from {request.client.host if request.client else 'unknown'}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid API key")

    return api_key
