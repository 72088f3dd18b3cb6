"""Action token generation and validation

Outbound emails carry links such as /api/follow?token=... whose token is a
signed JWT holding the action payload. The handlers only ever see the
decoded, verified payload.

Token payloads:

- approve:  {"type": "group" | "post", "TargetId": 12, "always": false}
- follow:   {"UserId": 3, "GroupId": 7} or {"UserId": 3, "PostId": 12}
- unfollow: {"MemberId": 42}
- publish:  {"mailServer": "so", "messageId": "...", "groupSlug": "testgroup"}

Standard claims:
- iat (Issued At): Unix timestamp when the token was created
- exp (Expiration): iat + ACTION_TOKEN_EXPIRE_HOURS

Security Properties:
- Algorithm: JWT_ALGORITHM (HS256 by default)
- Secret: JWT_SECRET setting
- Stateless validation (no database lookup required)
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from ..config import get_settings


def create_action_token(data: Dict[str, Any], expires_in_hours: Optional[int] = None) -> str:
    """Create a signed token carrying an action payload.

    Args:
        data: Action payload (see module docstring)
        expires_in_hours: Override of ACTION_TOKEN_EXPIRE_HOURS

    Returns:
        str: Signed JWT token
    """
    settings = get_settings()
    hours = expires_in_hours if expires_in_hours is not None else settings.ACTION_TOKEN_EXPIRE_HOURS

    now = datetime.now(timezone.utc)
    payload = dict(data)
    payload['iat'] = int(now.timestamp())  # Issued at
    payload['exp'] = int((now + timedelta(hours=hours)).timestamp())  # Expiration

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate an action token.

    Returns:
        dict: Decoded payload, standard claims removed

    Raises:
        jwt.ExpiredSignatureError: If token has expired
        jwt.InvalidTokenError: If token is invalid or tampered
    """
    settings = get_settings()

    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise jwt.ExpiredSignatureError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise jwt.InvalidTokenError(f"Invalid token: {str(e)}")

    payload.pop('iat', None)
    payload.pop('exp', None)
    return payload
