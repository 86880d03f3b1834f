# crewdesk/crud/authz_store.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from crewdesk.core.errors import NotFound
from crewdesk.core.roles import RoleKind
from crewdesk.core.store import check_membership_patch, pick_current_membership
from crewdesk.models.auth_session import AuthSession
from crewdesk.models.role import Role
from crewdesk.models.team_membership import INVITE_REVOKED, TeamMembership
from crewdesk.models.user import User


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SqlAuthzStore:
    """
    AuthzStore over one request-scoped AsyncSession.

    Reads use populate_existing so a row already in the session's identity map
    is refreshed from the database rather than served from memory.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # -----------------------------
    # Sessions
    # -----------------------------
    async def find_session(self, session_id: uuid.UUID) -> Optional[AuthSession]:
        return await self.db.get(AuthSession, session_id, populate_existing=True)

    async def invalidate_session(self, session_id: uuid.UUID, reason: str) -> None:
        """
        Committed immediately: the request that triggers it is about to fail,
        and the logout must survive that.
        """
        session = await self.db.get(AuthSession, session_id)
        if session is None or session.revoked_at is not None:
            return
        session.revoked_at = _utcnow()
        session.revoked_reason = reason
        await self.db.commit()

    # -----------------------------
    # Identities / memberships
    # -----------------------------
    async def find_identity(self, identity_id: uuid.UUID) -> Optional[User]:
        return await self.db.get(User, identity_id, populate_existing=True)

    async def find_membership(self, member_id: uuid.UUID) -> Optional[TeamMembership]:
        stmt = (
            select(TeamMembership)
            .where(
                TeamMembership.member_id == member_id,
                TeamMembership.invite_status != INVITE_REVOKED,
            )
            .execution_options(populate_existing=True)
        )
        rows = (await self.db.execute(stmt)).scalars().all()
        return pick_current_membership(rows)

    async def update_membership(self, membership_id: uuid.UUID, patch: Mapping[str, Any]) -> TeamMembership:
        check_membership_patch(patch)
        membership = await self.db.get(TeamMembership, membership_id, with_for_update=True)
        if membership is None:
            raise NotFound("Team member not found.")
        for field, value in patch.items():
            setattr(membership, field, value)
        await self.db.flush()
        return membership

    # -----------------------------
    # Roles
    # -----------------------------
    async def find_role(self, role_id: uuid.UUID) -> Optional[Role]:
        return await self.db.get(Role, role_id, populate_existing=True)

    async def find_builtin_role(self) -> Optional[Role]:
        stmt = (
            select(Role)
            .where(Role.kind == RoleKind.BUILTIN.value)
            .order_by(Role.created_at)
            .limit(1)
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def list_roles(self, tenant_id: uuid.UUID) -> list[Role]:
        stmt = (
            select(Role)
            .where(Role.tenant_id == tenant_id)
            .where(Role.is_active.is_(True))
            .order_by(Role.hierarchy_rank.desc(), Role.name)
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def add_role(self, role: Role) -> Role:
        self.db.add(role)
        await self.db.flush()
        return role

    async def save_role(self, role: Role) -> Role:
        self.db.add(role)
        await self.db.flush()
        return role

    async def count_role_members(self, role_id: uuid.UUID) -> int:
        """Memberships that still reference the role (anything not revoked)."""
        stmt = (
            select(func.count(TeamMembership.id))
            .where(TeamMembership.role_id == role_id)
            .where(TeamMembership.invite_status != INVITE_REVOKED)
        )
        res = await self.db.execute(stmt)
        return int(res.scalar() or 0)
