# crewdesk/core/roles.py

import enum

OWNER_ROLE_NAME = "Owner"


class RoleKind(str, enum.Enum):
    BUILTIN = "BUILTIN"   # the singleton Owner role, immutable, not tenant-scoped
    CUSTOM = "CUSTOM"     # tenant-scoped, CRUD-able by the tenant owner


class HierarchyRank(enum.IntEnum):
    # Higher value = more authority. Gaps leave room for new tiers.
    WORKER = 100
    MANAGER = 200
    OWNER = 300


def normalize_role_name(name: str | None) -> str:
    return " ".join((name or "").strip().split())


def is_owner_role_name(name: str | None) -> bool:
    return normalize_role_name(name).casefold() == OWNER_ROLE_NAME.casefold()


def rank_label(rank: int) -> str:
    try:
        return HierarchyRank(rank).name.title()
    except ValueError:
        return str(rank)
