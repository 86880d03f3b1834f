# backend/crewdesk/api/v1/auth.py
from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Response, status
from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from crewdesk.api.deps.context import get_current_user, get_raw_credentials, get_store
from crewdesk.core.config import settings
from crewdesk.core.errors import MembershipInactive, Unauthenticated
from crewdesk.core.identity import RawCredentials
from crewdesk.core.security import create_session_token, decode_session_token, session_expiry
from crewdesk.core.store import AuthzStore
from crewdesk.core.team_context import resolve_user_context
from crewdesk.db.session import get_db
from crewdesk.models.auth_session import AuthSession
from crewdesk.models.user import User
from crewdesk.schemas.auth import (
    ContextOut,
    MagicCodeRequest,
    MagicCodeVerify,
    MeResponse,
    MembershipStateOut,
    TokenResponse,
)

router = APIRouter(prefix="/auth", tags=["auth"])


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _should_return_magic_code_in_response() -> bool:
    """
    In staging/production the code is never returned; elsewhere it can be,
    to simplify Swagger testing.
    """
    if settings.is_production_like:
        return False
    return settings.RETURN_MAGIC_CODE_IN_RESPONSE


def set_session_cookie(response: Response, token: str, expires_at: datetime) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=max(int((expires_at - _utcnow()).total_seconds()), 0),
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=settings.SESSION_COOKIE_NAME, path="/")


async def purge_expired_magic_codes(db: AsyncSession) -> None:
    """
    Clear all expired magic codes globally.
    """
    stmt = (
        update(User)
        .where(User.magic_code_expires_at.is_not(None))
        .where(User.magic_code_expires_at < _utcnow())
        .values(magic_code=None, magic_code_expires_at=None)
    )
    await db.execute(stmt)


@router.post("/request-code")
async def request_code(payload: MagicCodeRequest, db: AsyncSession = Depends(get_db)):
    """
    Body: {"email": "user@example.com"}
    Generates a magic code (stored on user record). Signing up is the same
    call: an unknown email gets a new, owner-capable identity.
    """
    email = User.normalize_email(str(payload.email))

    await purge_expired_magic_codes(db)

    res = await db.execute(select(User).where(User.email == email))
    user = res.scalar_one_or_none()

    if user is None:
        user = User(email=email, is_active=True)
        db.add(user)
        await db.flush()
    elif user.is_active is not True:
        # Same response as success; do not reveal deactivated accounts.
        await db.commit()
        return {"status": "ok", "expires_in_minutes": settings.MAGIC_CODE_EXPIRY_MINUTES}

    code = str(secrets.randbelow(900000) + 100000)  # 6 digits
    user.magic_code = code
    user.magic_code_expires_at = _utcnow() + timedelta(minutes=settings.MAGIC_CODE_EXPIRY_MINUTES)

    await db.commit()

    resp = {"status": "ok", "expires_in_minutes": settings.MAGIC_CODE_EXPIRY_MINUTES}
    if _should_return_magic_code_in_response():
        resp["code"] = code
    return resp


@router.post("/verify-code", response_model=TokenResponse)
async def verify_code(
    payload: MagicCodeVerify,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    """
    Body: {"email":"user@example.com","code":"123456"}
    Opens a server-side session, sets the session cookie and returns the same
    token for bearer use.
    """
    email = User.normalize_email(str(payload.email))
    code = payload.code.strip()

    if not code:
        raise HTTPException(status_code=400, detail="code is required")

    await purge_expired_magic_codes(db)

    res = await db.execute(select(User).where(User.email == email))
    user = res.scalar_one_or_none()

    if not user or not user.magic_code or not user.magic_code_expires_at:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid code")

    if not secrets.compare_digest(user.magic_code, code):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid code")

    if user.magic_code_expires_at < _utcnow():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Code expired")

    if user.is_active is not True:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid code")

    # One-time use: clear after successful verification
    user.magic_code = None
    user.magic_code_expires_at = None

    session = AuthSession(id=uuid.uuid4(), user_id=user.id, expires_at=session_expiry())
    db.add(session)
    await db.commit()

    token = create_session_token(session.id, session.expires_at)
    set_session_cookie(response, token, session.expires_at)
    logger.info("Session {} opened for user {}", session.id, user.id)
    return TokenResponse(access_token=token)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    response: Response,
    credentials: RawCredentials = Depends(get_raw_credentials),
    store: AuthzStore = Depends(get_store),
):
    """
    Ends the server-side session behind the credentials (if any) and clears
    the cookie. Idempotent.
    """
    try:
        session_id = decode_session_token(credentials.session_token())
    except Unauthenticated:
        session_id = None

    if session_id is not None:
        await store.invalidate_session(session_id, "logout")
        logger.info("Session {} closed by logout", session_id)

    clear_session_cookie(response)
    return None


@router.get("/me", response_model=MeResponse)
async def me(
    user: User = Depends(get_current_user),
    store: AuthzStore = Depends(get_store),
) -> MeResponse:
    """
    Current identity plus its resolved team context. A pending or deactivated
    membership is reported in membership_state instead of failing, so the UI
    can tell the user what to do next.
    """
    out = MeResponse(
        id=str(user.id),
        email=user.email,
        full_name=user.full_name,
        is_active=user.is_active,
    )
    try:
        context = await resolve_user_context(store, user.id)
    except MembershipInactive as exc:
        out.membership_state = MembershipStateOut(**exc.to_detail())
        return out

    data = context.as_dict()
    out.context = ContextOut(
        effective_tenant_id=data["effective_tenant_id"],
        is_owner=data["is_owner"],
        membership_id=data["membership_id"],
        permissions=data["permissions"],
        hierarchy_rank=data["hierarchy_rank"],
    )
    return out
