"""
Token verification for Supabase Auth access tokens.

Supabase signs session tokens with the project JWT secret (HS256) and sets
``aud`` to ``authenticated``. The ``sub`` claim is the user id.
"""
import logging
from typing import Optional, Dict, Any
from jose import JWTError, jwt

from .config import settings
from ..schemas.auth import Principal

logger = logging.getLogger(__name__)


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify and decode a Supabase access token. Returns None when invalid."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
        )
    except JWTError as e:
        logger.debug(f"Token verification failed: {type(e).__name__}: {e}")
        return None


def principal_from_token(token: str) -> Optional[Principal]:
    """Build the authenticated principal from a token, or None."""
    payload = verify_token(token)
    if not payload:
        return None

    user_id = payload.get("sub")
    if not user_id:
        logger.warning("Token verified but carries no sub claim")
        return None

    email = payload.get("email") or (payload.get("user_metadata") or {}).get("email", "")
    return Principal(id=user_id, email=email or "")
