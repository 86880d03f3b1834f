# crewdesk/core/team_context.py
"""
Identity -> UserContext: which tenant the caller acts in, what they may do,
and where they sit in the assignment hierarchy.

A UserContext lives for exactly one request. It is derived from stored
memberships and roles on every call and is never cached, serialized into a
session or accepted from the client.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import FrozenSet, Optional

from loguru import logger

from crewdesk.auth.permissions import ALL_CAPABILITIES, Capability, coerce_stored_capabilities
from crewdesk.core.errors import Forbidden, MembershipInactive, NotFound
from crewdesk.core.role_registry import effective_permissions
from crewdesk.core.roles import HierarchyRank, RoleKind
from crewdesk.core.store import AuthzStore
from crewdesk.models.role import Role
from crewdesk.models.team_membership import TeamMembership


@dataclass(frozen=True)
class UserContext:
    acting_id: uuid.UUID
    effective_tenant_id: uuid.UUID
    is_owner: bool
    membership_id: Optional[uuid.UUID]
    permissions: FrozenSet[Capability]
    hierarchy_rank: HierarchyRank

    def as_dict(self) -> dict:
        return {
            "acting_id": str(self.acting_id),
            "effective_tenant_id": str(self.effective_tenant_id),
            "is_owner": self.is_owner,
            "membership_id": str(self.membership_id) if self.membership_id else None,
            "permissions": sorted(p.value for p in self.permissions),
            "hierarchy_rank": self.hierarchy_rank.name,
        }


def owner_context(acting_id: uuid.UUID) -> UserContext:
    return UserContext(
        acting_id=acting_id,
        effective_tenant_id=acting_id,
        is_owner=True,
        membership_id=None,
        permissions=ALL_CAPABILITIES,
        hierarchy_rank=HierarchyRank.OWNER,
    )


def member_rank(role: Role) -> HierarchyRank:
    """
    Rank a member may hold. Owner rank (or an unknown value) on a member's
    role is a data error and is downgraded to Worker.
    """
    try:
        rank = HierarchyRank(role.hierarchy_rank)
    except ValueError:
        rank = None
    if rank is None or rank == HierarchyRank.OWNER:
        logger.error("Role {} carries invalid member rank {!r}; treating as WORKER", role.id, role.hierarchy_rank)
        return HierarchyRank.WORKER
    return rank


async def load_member_role(store: AuthzStore, membership: TeamMembership) -> Role:
    """
    The role behind an access-granting membership. It must be a live custom
    role of the membership's own tenant; anything else fails closed.
    """
    role = await store.find_role(membership.role_id)
    if role is None:
        logger.error("Membership {} references missing role {}", membership.id, membership.role_id)
        raise Forbidden()
    if role.kind != RoleKind.CUSTOM.value or role.tenant_id != membership.owner_id:
        logger.error(
            "Membership {} references role {} outside its tenant (kind={}, tenant={})",
            membership.id,
            role.id,
            role.kind,
            role.tenant_id,
        )
        raise Forbidden()
    return role


def member_permissions(membership: TeamMembership, role: Role) -> FrozenSet[Capability]:
    # Override replaces the role set; it is never merged with it.
    if membership.use_custom_permissions:
        return coerce_stored_capabilities(membership.custom_permissions or [])
    return effective_permissions(role)


async def resolve_user_context(store: AuthzStore, acting_id: uuid.UUID) -> UserContext:
    identity = await store.find_identity(acting_id)
    if identity is None:
        raise NotFound("Identity not found.")

    membership = await store.find_membership(acting_id)
    if membership is None:
        return owner_context(acting_id)

    if not membership.grants_access:
        logger.info(
            "Membership {} for {} does not grant access (invite_status={}, is_active={})",
            membership.id,
            acting_id,
            membership.invite_status,
            membership.is_active,
        )
        raise MembershipInactive(
            invite_status=membership.invite_status,
            is_active=bool(membership.is_active),
        )

    role = await load_member_role(store, membership)

    return UserContext(
        acting_id=acting_id,
        effective_tenant_id=membership.owner_id,
        is_owner=False,
        membership_id=membership.id,
        permissions=member_permissions(membership, role),
        hierarchy_rank=member_rank(role),
    )
