# crewdesk/core/authz.py
"""
Entry points used by every business handler:

    context = await resolve_context(store, credentials)   # 401 / membership_inactive
    require_capability(context, Capability.WRITE_JOBS)     # 403
    decision = await can_assign(store, context, member_id) # {allowed, reason}

All data a handler touches must be scoped to context.effective_tenant_id.
"""

from __future__ import annotations

from crewdesk.auth.permissions import require_capability, require_owner  # noqa: F401
from crewdesk.core.assignment import AssignmentDecision, can_assign, ensure_can_assign  # noqa: F401
from crewdesk.core.identity import RawCredentials, resolve_identity
from crewdesk.core.store import AuthzStore
from crewdesk.core.team_context import UserContext, resolve_user_context


async def resolve_context(store: AuthzStore, credentials: RawCredentials) -> UserContext:
    identity = await resolve_identity(store, credentials)
    return await resolve_user_context(store, identity.id)
