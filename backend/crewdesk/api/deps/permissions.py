from __future__ import annotations

from typing import Callable, Literal, Sequence

from fastapi import Depends

from crewdesk.api.deps.context import get_user_context
from crewdesk.auth.permissions import Capability, require_capability, require_owner
from crewdesk.core.team_context import UserContext


def require_capabilities(
    required: str | Capability | Sequence[str | Capability],
    *,
    mode: Literal["any", "all"] = "any",
) -> Callable:
    """
    Enforce capabilities on the caller's freshly resolved UserContext.

    Args:
      required: capability OR list of capabilities
      mode: "any" => one of the listed capabilities passes (e.g. endpoints
            shared by owner and managers); "all" => every one is needed
    """
    required_list = [required] if isinstance(required, (str, Capability)) else list(required)
    if not required_list:
        raise ValueError("require_capabilities needs at least one capability")

    async def _checker(context: UserContext = Depends(get_user_context)) -> UserContext:
        require_capability(context, required_list, mode=mode)
        return context

    return _checker


def owner_only() -> Callable:
    async def _checker(context: UserContext = Depends(get_user_context)) -> UserContext:
        require_owner(context)
        return context

    return _checker
