# crewdesk/core/identity.py
"""
Credentials -> current identity.

The session cookie is the primary transport; a bearer token carrying the same
signed session reference is the fallback for clients without cookies. Both
end in the same session lookup, so there is a single trust boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from loguru import logger

from crewdesk.core.errors import Unauthenticated
from crewdesk.core.security import decode_session_token
from crewdesk.core.store import AuthzStore
from crewdesk.models.user import User


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class RawCredentials:
    session_cookie: Optional[str] = None
    bearer_token: Optional[str] = None

    def session_token(self) -> str:
        if self.session_cookie and self.session_cookie.strip():
            return self.session_cookie
        if self.bearer_token and self.bearer_token.strip():
            return self.bearer_token
        raise Unauthenticated()


async def resolve_identity(
    store: AuthzStore,
    credentials: RawCredentials,
    *,
    now: Optional[datetime] = None,
) -> User:
    """
    Return the identity behind the credentials, reloaded from the store.

    A session whose identity is gone or deactivated is invalidated before the
    request is rejected, so the client cannot keep retrying with it.
    """
    session_id = decode_session_token(credentials.session_token())
    now = now or _utcnow()

    session = await store.find_session(session_id)
    if session is None:
        raise Unauthenticated("Invalid session")

    if session.revoked_at is not None:
        raise Unauthenticated("Session has ended", clear_session=True)

    if _as_aware(session.expires_at) <= now:
        await store.invalidate_session(session.id, "expired")
        raise Unauthenticated("Session has expired", clear_session=True)

    identity = await store.find_identity(session.user_id)
    if identity is None or identity.is_active is not True:
        await store.invalidate_session(session.id, "identity_inactive")
        logger.warning(
            "Session {} invalidated: identity {} missing or inactive",
            session.id,
            session.user_id,
        )
        raise Unauthenticated("Account is no longer active", clear_session=True)

    return identity
