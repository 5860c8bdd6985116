"""
Identity service for the CrowdFlash realtime channel.

User accounts live with the external identity provider; this module only
mints and verifies the short-lived JWTs devices present when opening a
socket.  Uses PyJWT for token generation/verification.

Expected claims:
  - sub:  str  (user id)
  - role: str  (attendee | admin)
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt

from crowdflash.core.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# JWT token generation
# ---------------------------------------------------------------------------

ACCESS_TOKEN_EXPIRE_MINUTES = 30

ROLE_ATTENDEE = "attendee"
ROLE_ADMIN = "admin"


def create_access_token(
    user_id: str,
    role: str = ROLE_ATTENDEE,
    *,
    expires_in: Optional[timedelta] = None,
) -> tuple[str, datetime]:
    """Create a short-lived access token.

    Returns:
        Tuple of (token_string, expiration_datetime).
    """
    now = datetime.now(timezone.utc)
    expires_at = now + (expires_in or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    payload = {
        "sub": str(user_id),
        "role": role,
        "type": "access",
        "exp": expires_at,
        "iat": now,
        "jti": str(uuid.uuid4()),
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return token, expires_at


# ---------------------------------------------------------------------------
# JWT verification
# ---------------------------------------------------------------------------

def decode_access_token(token: str | None) -> dict[str, Any] | None:
    """Validate a JWT and return the decoded payload, or None on failure."""
    if not token:
        return None
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError:
        logger.warning("JWT token expired")
        return None
    except jwt.InvalidTokenError as exc:
        logger.warning("Invalid JWT token: %s", exc)
        return None

    # Minimal validation: must contain sub and role
    if "sub" not in payload or "role" not in payload:
        logger.warning("JWT missing required claims (sub, role)")
        return None
    return payload
