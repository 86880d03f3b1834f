from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError, jwt

from crewdesk.core.config import settings
from crewdesk.core.errors import Unauthenticated

SESSION_TOKEN_TYPE = "session"


def _normalize_token(token: str | None) -> str:
    """
    Make token decoding resilient to common Swagger / copy-paste issues:
    - Leading/trailing whitespace/newlines
    - Surrounding quotes
    - Accidentally including the 'Bearer ' prefix in the token field
    """
    if token is None:
        return ""

    t = token.strip()

    # remove surrounding quotes if present
    if len(t) >= 2 and ((t.startswith('"') and t.endswith('"')) or (t.startswith("'") and t.endswith("'"))):
        t = t[1:-1].strip()

    # remove accidental bearer prefix
    if t.lower().startswith("bearer "):
        t = t[7:].strip()

    return t


def session_expiry(now: Optional[datetime] = None) -> datetime:
    return (now or datetime.now(timezone.utc)) + timedelta(minutes=settings.SESSION_EXPIRE_MINUTES)


def create_session_token(session_id: uuid.UUID, expires_at: datetime) -> str:
    """
    Signed reference to a server-side session row. The same string is set as
    the session cookie and returned for clients that can only send a bearer
    token.
    """
    to_encode: dict[str, Any] = {
        "sub": str(session_id),
        "typ": SESSION_TOKEN_TYPE,
        "exp": int(expires_at.timestamp()),
        "iat": int(datetime.now(timezone.utc).timestamp()),
    }

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def decode_session_token(token: str | None) -> uuid.UUID:
    token = _normalize_token(token)
    if not token:
        raise Unauthenticated("Invalid session")

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require_sub": True, "require_exp": True},
        )
    except JWTError:
        # Includes expired signature, bad format, bad signature, wrong algorithm, etc.
        raise Unauthenticated("Invalid session")

    if payload.get("typ") != SESSION_TOKEN_TYPE:
        raise Unauthenticated("Invalid session")

    try:
        return uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise Unauthenticated("Invalid session")
