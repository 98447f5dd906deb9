"""
Authentication Module

Two layers:
- The calling backend proves itself with a shared-secret bearer token.
- The end user it acts for is passed in the X-User-Id header, already
  authenticated by the web app's identity provider.
"""

import logging
from typing import Optional

from fastapi import Header, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)

USER_ID_HEADER = "X-User-Id"


def get_api_secret() -> str:
    """Get the API secret from validated config."""
    if not settings.entitlement_api_secret:
        raise ValueError(
            "ENTITLEMENT_API_SECRET environment variable is required for authentication"
        )
    return settings.entitlement_api_secret


async def verify_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> Optional[HTTPAuthorizationCredentials]:
    """
    Verify shared secret token.

    Raises:
        HTTPException: 401 if token is missing or invalid, 500 if auth is
            required but no secret is configured
    """
    if not settings.auth_required:
        # Development without a secret
        return credentials

    try:
        expected_secret = get_api_secret()
    except ValueError:
        raise HTTPException(
            status_code=500,
            detail="Server authentication not configured"
        )

    if credentials is None or credentials.credentials != expected_secret:
        raise HTTPException(
            status_code=401,
            detail="Invalid authentication token"
        )

    return credentials


async def current_user_id(
    x_user_id: Optional[str] = Header(default=None, alias=USER_ID_HEADER),
) -> Optional[str]:
    """The signed-in user, or None for anonymous requests."""
    if x_user_id is None or not x_user_id.strip():
        return None
    return x_user_id.strip()
