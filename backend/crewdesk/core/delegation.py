# crewdesk/core/delegation.py
"""
What a team manager may hand out to another member.

A non-owner can only grant a role ranked below their own whose capabilities
they already hold, and can only set custom permissions drawn from their own.
Owners are never limited here.
"""

from __future__ import annotations

from typing import Iterable

from loguru import logger

from crewdesk.auth.permissions import Capability
from crewdesk.core.errors import Forbidden
from crewdesk.core.role_registry import effective_permissions
from crewdesk.core.team_context import UserContext, member_rank
from crewdesk.models.role import Role


def ensure_can_grant_role(context: UserContext, role: Role) -> None:
    if context.is_owner:
        return
    if member_rank(role) >= context.hierarchy_rank:
        raise Forbidden("You cannot grant a role at or above your own rank.")

    missing = effective_permissions(role) - context.permissions
    if missing:
        logger.info(
            "Grant of role {} by {} refused; missing {}",
            role.id,
            context.acting_id,
            sorted(c.value for c in missing),
        )
        raise Forbidden("You cannot grant a role with capabilities you do not hold.")


def ensure_can_grant_permissions(context: UserContext, permissions: Iterable[Capability | str]) -> None:
    if context.is_owner:
        return
    if not {Capability(p) for p in permissions} <= context.permissions:
        raise Forbidden("You cannot grant capabilities you do not hold.")
