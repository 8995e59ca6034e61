"""Authentication dependencies for FastAPI."""

import asyncio
import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from interviewmate.core.errors import AuthError

logger = logging.getLogger(__name__)

# HTTP Bearer scheme for Authorization header
security = HTTPBearer(auto_error=False)


class AuthContext:
    """Context object containing authenticated user info."""

    def __init__(self, user_id: str, token: str, first_name: Optional[str] = None):
        self.user_id = user_id
        self.token = token
        self.first_name = first_name

    @property
    def has_display_name(self) -> bool:
        return bool(self.first_name and self.first_name.strip())


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[AuthContext]:
    """
    Extract and validate the current user from the Bearer token.

    Returns None if no valid auth is present (for optional auth endpoints).
    """
    if not credentials:
        return None

    token = credentials.credentials

    try:
        from interviewmate.db.supabase_client import get_supabase

        client = get_supabase()

        # Validates the JWT signature and expiration
        auth_response = await asyncio.to_thread(client.auth.get_user, token)

        if not auth_response or not auth_response.user:
            return None

        user_metadata = auth_response.user.user_metadata or {}
        return AuthContext(
            user_id=str(auth_response.user.id),
            token=token,
            first_name=user_metadata.get("first_name"),
        )

    except Exception as e:
        logger.warning(f"Auth error: {e}")
        return None


def ensure_authenticated(auth: Optional[AuthContext]) -> AuthContext:
    """Raise 401 unless there is a user with a display name."""
    if not auth or not auth.has_display_name:
        raise AuthError("Unauthorized")
    return auth


async def require_auth(
    auth: Optional[AuthContext] = Depends(get_current_user),
) -> AuthContext:
    """Require authentication. Raises 401 if not authenticated."""
    return ensure_authenticated(auth)
