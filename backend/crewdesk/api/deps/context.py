from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from crewdesk.core.config import settings
from crewdesk.core.identity import RawCredentials, resolve_identity
from crewdesk.core.store import AuthzStore
from crewdesk.core.team_context import UserContext, resolve_user_context
from crewdesk.crud.authz_store import SqlAuthzStore
from crewdesk.db.session import get_db
from crewdesk.models.user import User

# auto_error=False: the cookie is the primary transport, the header is optional.
bearer_scheme = HTTPBearer(auto_error=False)


async def get_store(db: AsyncSession = Depends(get_db)) -> AuthzStore:
    return SqlAuthzStore(db)


async def get_raw_credentials(
    request: Request,
    bearer: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> RawCredentials:
    return RawCredentials(
        session_cookie=request.cookies.get(settings.SESSION_COOKIE_NAME),
        bearer_token=bearer.credentials if bearer is not None else None,
    )


async def get_current_user(
    credentials: RawCredentials = Depends(get_raw_credentials),
    store: AuthzStore = Depends(get_store),
) -> User:
    """
    Dependency for protected endpoints. Reloads the identity on every request.
    """
    return await resolve_identity(store, credentials)


async def get_user_context(
    user: User = Depends(get_current_user),
    store: AuthzStore = Depends(get_store),
) -> UserContext:
    """
    Fresh per request. Every query a handler runs must be scoped to
    context.effective_tenant_id, never to a tenant id sent by the client.
    """
    return await resolve_user_context(store, user.id)
