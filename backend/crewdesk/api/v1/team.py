from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crewdesk.api.deps.context import get_current_user, get_store, get_user_context
from crewdesk.api.deps.permissions import require_capabilities
from crewdesk.auth.permissions import Capability, normalize_capabilities
from crewdesk.core.assignment import can_assign
from crewdesk.core.delegation import ensure_can_grant_permissions, ensure_can_grant_role
from crewdesk.core.errors import Forbidden, NotFound
from crewdesk.core.role_registry import RoleRegistry
from crewdesk.core.store import AuthzStore
from crewdesk.core.team_context import UserContext, member_rank
from crewdesk.db.session import get_db
from crewdesk.models.role import Role
from crewdesk.models.team_membership import (
    INVITE_ACCEPTED,
    INVITE_PENDING,
    INVITE_REVOKED,
    TeamMembership,
)
from crewdesk.models.user import ACCOUNT_TYPE_MEMBER, User
from crewdesk.schemas.team import (
    AcceptTeamInvite,
    AssignmentCheckOut,
    AssignmentCheckRequest,
    TeamInviteCreate,
    TeamInviteOut,
    TeamMemberOut,
    TeamMemberPermissionsUpdate,
    TeamMemberRoleUpdate,
)

router = APIRouter(prefix="/team", tags=["team"])


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _generate_token() -> str:
    return secrets.token_urlsafe(48)


def _member_out(m: TeamMembership, role_name: Optional[str] = None) -> TeamMemberOut:
    return TeamMemberOut(
        id=m.id,
        owner_id=m.owner_id,
        member_id=m.member_id,
        email=m.email,
        role_id=m.role_id,
        role_name=role_name,
        invite_status=m.invite_status,
        is_active=m.is_active,
        use_custom_permissions=m.use_custom_permissions,
        custom_permissions=m.custom_permissions,
        invite_accepted_at=m.invite_accepted_at,
        created_at=m.created_at,
    )


def _checked_permissions(values: Iterable[str]) -> list[str]:
    try:
        return [p.value for p in normalize_capabilities(values)]
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


async def _managed_membership(
    store: AuthzStore,
    db: AsyncSession,
    context: UserContext,
    membership_id: uuid.UUID,
) -> TeamMembership:
    """
    A membership of the caller's tenant that the caller may act on. Another
    tenant's row is reported as missing.
    """
    membership = await db.get(TeamMembership, membership_id, populate_existing=True)
    if membership is None or membership.owner_id != context.effective_tenant_id:
        raise NotFound("Team member not found.")

    if not context.is_owner:
        if membership.id == context.membership_id:
            raise Forbidden("You cannot change your own membership.")
        role = await store.find_role(membership.role_id)
        if role is None or member_rank(role) >= context.hierarchy_rank:
            raise Forbidden("You can only manage members ranked below you.")
    return membership


# =========================================================
# INVITE + LIST
# =========================================================
@router.post("/invitations", response_model=TeamInviteOut, status_code=status.HTTP_201_CREATED)
async def create_team_invitation(
    payload: TeamInviteCreate,
    db: AsyncSession = Depends(get_db),
    store: AuthzStore = Depends(get_store),
    context: UserContext = Depends(require_capabilities(Capability.MANAGE_TEAM)),
):
    """
    Invite an email address into the caller's team with one of the tenant's
    roles. The membership stays pending (and grants nothing) until accepted;
    it is bound to an identity only by accept_team_invitation.
    """
    email = User.normalize_email(str(payload.email))
    tenant_id = context.effective_tenant_id

    role = await RoleRegistry(store).resolve_for_tenant(payload.role_id, tenant_id)
    ensure_can_grant_role(context, role)

    custom_permissions = None
    if payload.custom_permissions is not None:
        custom_permissions = _checked_permissions(payload.custom_permissions)
        ensure_can_grant_permissions(context, custom_permissions)

    owner = await store.find_identity(tenant_id)
    if owner is not None and owner.email == email:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="The business owner cannot be invited to their own team",
        )

    # Block a second live invitation/membership for the same tenant+email
    existing = (
        await db.execute(
            select(TeamMembership).where(
                TeamMembership.owner_id == tenant_id,
                TeamMembership.email == email,
                TeamMembership.invite_status != INVITE_REVOKED,
            )
        )
    ).scalars().first()
    if existing is not None:
        detail = (
            "A pending invitation already exists for this email"
            if existing.invite_status == INVITE_PENDING
            else "User is already a member of this team"
        )
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)

    membership = TeamMembership(
        id=uuid.uuid4(),
        owner_id=tenant_id,
        member_id=None,
        role_id=role.id,
        email=email,
        invite_status=INVITE_PENDING,
        invite_token=_generate_token(),
        invite_sent_at=_utcnow(),
        custom_permissions=custom_permissions,
        use_custom_permissions=custom_permissions is not None,
        is_active=True,
    )
    db.add(membership)
    await db.commit()
    await db.refresh(membership)

    logger.info(
        "Team invitation {} created by {} for tenant {} (role {})",
        membership.id,
        context.acting_id,
        tenant_id,
        role.id,
    )
    return membership


@router.get("/members", response_model=List[TeamMemberOut])
async def list_team_members(
    db: AsyncSession = Depends(get_db),
    context: UserContext = Depends(require_capabilities([Capability.MANAGE_TEAM, Capability.VIEW_ALL])),
):
    """
    Every membership of the caller's tenant, revoked ones included.
    """
    stmt = (
        select(TeamMembership, Role.name)
        .outerjoin(Role, Role.id == TeamMembership.role_id)
        .where(TeamMembership.owner_id == context.effective_tenant_id)
        .order_by(TeamMembership.created_at.desc())
    )
    rows = (await db.execute(stmt)).all()
    return [_member_out(m, role_name) for m, role_name in rows]


# =========================================================
# ACCEPT (authenticated invitee)
# =========================================================
@router.post("/invitations/accept", response_model=TeamMemberOut)
async def accept_team_invitation(
    payload: AcceptTeamInvite,
    db: AsyncSession = Depends(get_db),
    store: AuthzStore = Depends(get_store),
    user: User = Depends(get_current_user),
):
    """
    Accept an invitation by token. The caller must be signed in with the
    invited email address.

    The invitation row is locked (FOR UPDATE) to prevent a double accept.
    """
    token = (payload.token or "").strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="token is required")

    membership = (
        await db.execute(
            select(TeamMembership)
            .where(TeamMembership.invite_token == token)
            .with_for_update()
        )
    ).scalar_one_or_none()

    if membership is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid invitation token")

    if membership.invite_status != INVITE_PENDING:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Invitation is no longer pending")

    if User.normalize_email(membership.email) != user.email:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This invitation was sent to a different email address",
        )

    current = await store.find_membership(user.id)
    if current is not None and current.id != membership.id and current.grants_access:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="You are already a member of another team",
        )

    own_team = (
        await db.execute(
            select(TeamMembership.id).where(
                TeamMembership.owner_id == user.id,
                TeamMembership.invite_status != INVITE_REVOKED,
            )
        )
    ).first()
    if own_team is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="You own a team and cannot join another one",
        )

    membership = await store.update_membership(
        membership.id,
        {
            "member_id": user.id,
            "invite_status": INVITE_ACCEPTED,
            "invite_accepted_at": _utcnow(),
            "invite_token": None,
            "is_active": True,
        },
    )
    user.account_type = ACCOUNT_TYPE_MEMBER
    await db.commit()

    logger.info("Team invitation {} accepted by {}", membership.id, user.id)
    role = await store.find_role(membership.role_id)
    return _member_out(membership, role.name if role is not None else None)


# =========================================================
# LIFECYCLE (revoke / deactivate / reactivate)
# =========================================================
@router.post("/members/{membership_id}/revoke", response_model=TeamMemberOut)
async def revoke_team_member(
    membership_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    store: AuthzStore = Depends(get_store),
    context: UserContext = Depends(require_capabilities(Capability.MANAGE_TEAM)),
):
    """
    Revoke a pending invitation or an accepted membership. The row is kept so
    past assignments still point at it; access ends on the member's next request.
    """
    membership = await _managed_membership(store, db, context, membership_id)
    if membership.invite_status == INVITE_REVOKED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Membership already revoked")

    membership = await store.update_membership(
        membership.id,
        {"invite_status": INVITE_REVOKED, "is_active": False, "invite_token": None},
    )
    await db.commit()
    logger.info("Membership {} revoked by {}", membership.id, context.acting_id)
    return _member_out(membership)


@router.post("/members/{membership_id}/deactivate", response_model=TeamMemberOut)
async def deactivate_team_member(
    membership_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    store: AuthzStore = Depends(get_store),
    context: UserContext = Depends(require_capabilities(Capability.MANAGE_TEAM)),
):
    membership = await _managed_membership(store, db, context, membership_id)
    if membership.invite_status != INVITE_ACCEPTED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only accepted members can be deactivated")

    membership = await store.update_membership(membership.id, {"is_active": False})
    await db.commit()
    logger.info("Membership {} deactivated by {}", membership.id, context.acting_id)
    return _member_out(membership)


@router.post("/members/{membership_id}/reactivate", response_model=TeamMemberOut)
async def reactivate_team_member(
    membership_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    store: AuthzStore = Depends(get_store),
    context: UserContext = Depends(require_capabilities(Capability.MANAGE_TEAM)),
):
    membership = await _managed_membership(store, db, context, membership_id)
    if membership.invite_status == INVITE_REVOKED:
        # Revocation is final for this row; a new invitation is needed.
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Revoked members must be invited again")
    if membership.invite_status != INVITE_ACCEPTED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Invitation has not been accepted yet")

    membership = await store.update_membership(membership.id, {"is_active": True})
    await db.commit()
    logger.info("Membership {} reactivated by {}", membership.id, context.acting_id)
    return _member_out(membership)


# =========================================================
# ROLE + PERMISSION OVERRIDE
# =========================================================
@router.patch("/members/{membership_id}/role", response_model=TeamMemberOut)
async def change_team_member_role(
    membership_id: uuid.UUID,
    payload: TeamMemberRoleUpdate,
    db: AsyncSession = Depends(get_db),
    store: AuthzStore = Depends(get_store),
    context: UserContext = Depends(require_capabilities(Capability.MANAGE_TEAM)),
):
    membership = await _managed_membership(store, db, context, membership_id)
    role = await RoleRegistry(store).resolve_for_tenant(payload.role_id, context.effective_tenant_id)
    ensure_can_grant_role(context, role)

    membership = await store.update_membership(membership.id, {"role_id": role.id})
    await db.commit()
    logger.info("Membership {} moved to role {} by {}", membership.id, role.id, context.acting_id)
    return _member_out(membership, role.name)


@router.put("/members/{membership_id}/permissions", response_model=TeamMemberOut)
async def set_team_member_permissions(
    membership_id: uuid.UUID,
    payload: TeamMemberPermissionsUpdate,
    db: AsyncSession = Depends(get_db),
    store: AuthzStore = Depends(get_store),
    context: UserContext = Depends(require_capabilities(Capability.MANAGE_TEAM)),
):
    """
    Set or clear a member's custom permissions. While set, they replace the
    role's permissions; clearing falls back to the role.
    """
    membership = await _managed_membership(store, db, context, membership_id)

    if payload.use_custom_permissions:
        if payload.custom_permissions is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="custom_permissions is required when use_custom_permissions is true",
            )
        permissions = _checked_permissions(payload.custom_permissions)
        ensure_can_grant_permissions(context, permissions)
        patch = {"use_custom_permissions": True, "custom_permissions": permissions}
    else:
        patch = {"use_custom_permissions": False, "custom_permissions": None}

    membership = await store.update_membership(membership.id, patch)
    await db.commit()
    logger.info(
        "Membership {} custom permissions {} by {}",
        membership.id,
        "set" if payload.use_custom_permissions else "cleared",
        context.acting_id,
    )
    return _member_out(membership)


# =========================================================
# ASSIGNMENT CHECK
# =========================================================
@router.post("/assignments/check", response_model=AssignmentCheckOut)
async def check_assignment(
    payload: AssignmentCheckRequest,
    store: AuthzStore = Depends(get_store),
    context: UserContext = Depends(get_user_context),
):
    """
    Whether the caller may assign work to target_member_id (an identity id).
    Always 200; a denial carries the reason to show the user.
    """
    decision = await can_assign(store, context, payload.target_member_id)
    return AssignmentCheckOut(**decision.as_dict())
