"""Access tokens for MentorLink sessions

Tokens are HS256-signed with JWT_SECRET, issued by "mentorlink" and carry:

- sub: user id (UUID string)
- role: "student" | "mentor" | "admin"
- email: lowercase email address
- iat / exp: issue and expiry timestamps (JWT_EXPIRY_MINUTES, default 60)

The role claim is informational for clients. get_current_user always
reloads the user row, so disabling an account or changing its role takes
effect before the token expires.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Any
from uuid import UUID
import jwt

from .roles import UserRole

ALGORITHM = 'HS256'
ISSUER = 'mentorlink'
DEFAULT_EXPIRY_MINUTES = 60
REQUIRED_CLAIMS = ['sub', 'role', 'iat', 'exp', 'iss']


def _get_jwt_secret() -> str:
    secret = os.getenv('JWT_SECRET')
    if not secret:
        raise ValueError("JWT_SECRET environment variable is not set")
    return secret


def token_lifetime_minutes() -> int:
    """JWT_EXPIRY_MINUTES, falling back to the default when unset or not a number."""
    try:
        minutes = int(os.getenv('JWT_EXPIRY_MINUTES', DEFAULT_EXPIRY_MINUTES))
    except ValueError:
        return DEFAULT_EXPIRY_MINUTES
    return minutes if minutes > 0 else DEFAULT_EXPIRY_MINUTES


def create_access_token(user_id: UUID, role: str, email: str) -> str:
    """Sign a token for a user who just authenticated.

    Raises:
        ValueError: If JWT_SECRET is not set or the role is unknown
    """
    role = UserRole(role).value
    now = datetime.now(timezone.utc)

    payload = {
        'sub': str(user_id),
        'role': role,
        'email': email.lower(),
        'iss': ISSUER,
        'iat': int(now.timestamp()),
        'exp': int((now + timedelta(minutes=token_lifetime_minutes())).timestamp()),
    }
    return jwt.encode(payload, _get_jwt_secret(), algorithm=ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Verify signature, issuer and expiry and return the claims.

    Raises:
        jwt.ExpiredSignatureError: Token has expired
        jwt.InvalidTokenError: Bad signature, wrong issuer, missing claims or garbage
        ValueError: JWT_SECRET is not set
    """
    return jwt.decode(
        token,
        _get_jwt_secret(),
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        options={'require': REQUIRED_CLAIMS},
    )
