# crewdesk/core/assignment.py
"""
Who may delegate work to whom.

Decisions follow the hierarchy rank, not capabilities:
  Owner   -> any active member of the tenant, or themself
  Manager -> Workers of the same tenant only
  Worker  -> nobody

Nothing here writes. Handlers call can_assign() before persisting an
assignment and may show the reason to the user.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from crewdesk.core.errors import AssignmentDenied, Forbidden
from crewdesk.core.roles import HierarchyRank
from crewdesk.core.store import AuthzStore
from crewdesk.core.team_context import UserContext, load_member_role, member_rank

WORKERS_CANNOT_ASSIGN = "Workers cannot assign work"
MANAGERS_NOT_SELF = "Managers cannot assign work to themselves"
MANAGERS_NOT_OWNER = "Managers cannot assign to the business owner"
MANAGERS_ONLY_WORKERS = "Managers can only assign to Workers"
NOT_ACTIVE_MEMBER = "The assignee is not an active member of your team"


@dataclass(frozen=True)
class AssignmentDecision:
    allowed: bool
    reason: Optional[str] = None

    def raise_if_denied(self) -> None:
        if not self.allowed:
            raise AssignmentDenied(self.reason or "Assignment not allowed")

    def as_dict(self) -> dict:
        out: dict = {"allowed": self.allowed}
        if self.reason:
            out["reason"] = self.reason
        return out


ALLOWED = AssignmentDecision(allowed=True)


def _deny(context: UserContext, target_id, reason: str) -> AssignmentDecision:
    logger.info(
        "Assignment denied: acting_id={} tenant_id={} target={} reason={!r}",
        context.acting_id,
        context.effective_tenant_id,
        target_id,
        reason,
    )
    return AssignmentDecision(allowed=False, reason=reason)


async def can_assign(store: AuthzStore, context: UserContext, target_member_id) -> AssignmentDecision:
    if context.hierarchy_rank < HierarchyRank.MANAGER:
        return _deny(context, target_member_id, WORKERS_CANNOT_ASSIGN)

    try:
        target_id = target_member_id if isinstance(target_member_id, uuid.UUID) else uuid.UUID(str(target_member_id))
    except ValueError:
        return _deny(context, target_member_id, NOT_ACTIVE_MEMBER)

    is_owner = context.hierarchy_rank >= HierarchyRank.OWNER

    if target_id == context.acting_id:
        return ALLOWED if is_owner else _deny(context, target_id, MANAGERS_NOT_SELF)

    if target_id == context.effective_tenant_id:
        # Only a non-owner gets here: an owner's acting id is the tenant id.
        return _deny(context, target_id, MANAGERS_NOT_OWNER)

    identity = await store.find_identity(target_id)
    membership = await store.find_membership(target_id)
    if (
        identity is None
        or identity.is_active is not True
        or membership is None
        or not membership.grants_access
        or membership.owner_id != context.effective_tenant_id
    ):
        return _deny(context, target_id, NOT_ACTIVE_MEMBER)

    try:
        role = await load_member_role(store, membership)
    except Forbidden:
        return _deny(context, target_id, NOT_ACTIVE_MEMBER)

    if is_owner:
        return ALLOWED

    if member_rank(role) == HierarchyRank.WORKER:
        return ALLOWED
    return _deny(context, target_id, MANAGERS_ONLY_WORKERS)


async def ensure_can_assign(store: AuthzStore, context: UserContext, target_member_id) -> None:
    """Raising variant for handlers that want to abort on denial."""
    (await can_assign(store, context, target_member_id)).raise_if_denied()
