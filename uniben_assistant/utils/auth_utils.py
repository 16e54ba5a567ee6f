import datetime
from typing import Any, Dict, Optional

import jwt

from uniben_assistant.config import Config
from uniben_assistant.core.identity import Actor

ALGORITHM = Config.JWT_ALGORITHM


class TokenError(Exception):
    """Raised when a bearer token cannot be accepted."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def _default_expiry(actor: Actor) -> datetime.timedelta:
    if actor.is_guest:
        return datetime.timedelta(hours=Config.GUEST_TOKEN_HOURS)
    return datetime.timedelta(days=Config.USER_TOKEN_DAYS)


def create_access_token(
    actor: Actor, expires_delta: Optional[datetime.timedelta] = None
) -> str:
    """Create a signed JWT carrying the actor's identity claims."""
    to_encode = actor.to_claims()
    now = datetime.datetime.now(datetime.timezone.utc)
    to_encode.update({
        "sub": actor.id,
        "iat": now,
        "exp": now + (expires_delta or _default_expiry(actor)),
        "iss": Config.JWT_ISSUER,
        "aud": Config.JWT_AUDIENCE,
    })
    return jwt.encode(to_encode, Config.JWT_SECRET, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode and verify a JWT token, raising TokenError with a user-facing reason."""
    try:
        return jwt.decode(
            token,
            Config.JWT_SECRET,
            algorithms=[ALGORITHM],
            audience=Config.JWT_AUDIENCE,
            issuer=Config.JWT_ISSUER,
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("TOKEN_EXPIRED", "Your session has expired. Please log in again.")
    except jwt.ImmatureSignatureError:
        raise TokenError("TOKEN_NOT_ACTIVE", "Token not active. Please log in again.")
    except jwt.InvalidTokenError:
        raise TokenError("INVALID_TOKEN", "Invalid token. Please log in again.")


def extract_bearer(auth_header: Optional[str]) -> str:
    """Return the raw token from an Authorization header or raise TokenError."""
    header = str(auth_header or "").strip()
    if not header.startswith("Bearer "):
        raise TokenError("NO_TOKEN", "Access token is required. Please log in again.")
    token = header.split(" ", 1)[1].strip()
    if not token:
        raise TokenError("INVALID_TOKEN_FORMAT", "Invalid token format. Please log in again.")
    return token
