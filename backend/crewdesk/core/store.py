# crewdesk/core/store.py
"""
What the authorization core needs from durable storage.

The core only reads, except for session invalidation. Membership lifecycle
writes (update_membership) are issued by the team handlers, and role writes
by the role registry on behalf of the tenant owner.

Implementations must not cache across requests: every call reflects the
store's current state.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Protocol

from crewdesk.models.auth_session import AuthSession
from crewdesk.models.role import Role
from crewdesk.models.team_membership import INVITE_REVOKED, TeamMembership
from crewdesk.models.user import User

# Fields handlers are allowed to change through update_membership.
MEMBERSHIP_MUTABLE_FIELDS = frozenset(
    {
        "member_id",
        "role_id",
        "invite_status",
        "invite_accepted_at",
        "invite_token",
        "is_active",
        "custom_permissions",
        "use_custom_permissions",
    }
)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class AuthzStore(Protocol):
    # sessions
    async def find_session(self, session_id: uuid.UUID) -> Optional[AuthSession]: ...

    async def invalidate_session(self, session_id: uuid.UUID, reason: str) -> None: ...

    # identities / memberships
    async def find_identity(self, identity_id: uuid.UUID) -> Optional[User]: ...

    async def find_membership(self, member_id: uuid.UUID) -> Optional[TeamMembership]: ...

    async def update_membership(self, membership_id: uuid.UUID, patch: Mapping[str, Any]) -> TeamMembership: ...

    # roles
    async def find_role(self, role_id: uuid.UUID) -> Optional[Role]: ...

    async def find_builtin_role(self) -> Optional[Role]: ...

    async def list_roles(self, tenant_id: uuid.UUID) -> list[Role]: ...

    async def add_role(self, role: Role) -> Role: ...

    async def save_role(self, role: Role) -> Role: ...

    async def count_role_members(self, role_id: uuid.UUID) -> int: ...


def pick_current_membership(memberships: Iterable[TeamMembership]) -> Optional[TeamMembership]:
    """
    Choose the membership that governs an identity.

    Revoked rows are ignored. Among the rest, one that grants access wins
    over any that do not; otherwise the most recent one is returned so the
    caller can explain why access is denied.
    """
    rows = [m for m in memberships if m.invite_status != INVITE_REVOKED]
    if not rows:
        return None
    return max(rows, key=lambda m: (m.grants_access, m.created_at or _EPOCH))


def check_membership_patch(patch: Mapping[str, Any]) -> None:
    unknown = set(patch) - MEMBERSHIP_MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Membership fields not updatable: {sorted(unknown)}")
