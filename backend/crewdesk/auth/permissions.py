from __future__ import annotations

import enum
from typing import TYPE_CHECKING, FrozenSet, Iterable, Literal, Mapping, Sequence

from loguru import logger

from crewdesk.core.errors import Forbidden
from crewdesk.core.roles import HierarchyRank

if TYPE_CHECKING:
    from crewdesk.core.team_context import UserContext


class Capability(str, enum.Enum):
    # jobs
    READ_JOBS = "read_jobs"
    WRITE_JOBS = "write_jobs"
    WRITE_JOB_NOTES = "write_job_notes"
    WRITE_JOB_MEDIA = "write_job_media"

    # quotes / invoices / clients
    READ_QUOTES = "read_quotes"
    WRITE_QUOTES = "write_quotes"
    READ_INVOICES = "read_invoices"
    WRITE_INVOICES = "write_invoices"
    READ_CLIENTS = "read_clients"
    WRITE_CLIENTS = "write_clients"

    # business administration
    MANAGE_TEAM = "manage_team"
    MANAGE_SETTINGS = "manage_settings"
    MANAGE_PAYMENTS = "manage_payments"
    MANAGE_TEMPLATES = "manage_templates"
    MANAGE_CATALOG = "manage_catalog"

    # reporting / time / expenses
    READ_REPORTS = "read_reports"
    READ_TIME_ENTRIES = "read_time_entries"
    WRITE_TIME_ENTRIES = "write_time_entries"
    READ_EXPENSES = "read_expenses"
    WRITE_EXPENSES = "write_expenses"

    # visibility beyond assigned records
    VIEW_ALL = "view_all"


# The Owner's grant. Computed from the enum so a new capability can never be
# left out of it.
ALL_CAPABILITIES: FrozenSet[Capability] = frozenset(Capability)

C = Capability

# Starting points offered to a tenant when it sets up its team. These become
# ordinary custom roles once seeded; nothing reads them at request time.
ROLE_TEMPLATES: Mapping[str, dict] = {
    "Manager": {
        "rank": HierarchyRank.MANAGER,
        "description": "Almost full access, except payment management",
        "permissions": (
            C.READ_JOBS, C.WRITE_JOBS,
            C.READ_QUOTES, C.WRITE_QUOTES,
            C.READ_INVOICES, C.WRITE_INVOICES,
            C.READ_CLIENTS, C.WRITE_CLIENTS,
            C.MANAGE_TEAM,
            C.MANAGE_SETTINGS,
            C.READ_REPORTS,
            C.MANAGE_TEMPLATES,
            C.READ_TIME_ENTRIES, C.WRITE_TIME_ENTRIES,
            C.READ_EXPENSES, C.WRITE_EXPENSES,
            C.MANAGE_CATALOG,
            C.VIEW_ALL,
            C.WRITE_JOB_NOTES,
            C.WRITE_JOB_MEDIA,
        ),
    },
    "Supervisor": {
        "rank": HierarchyRank.MANAGER,
        "description": "Can manage jobs and view most data",
        "permissions": (
            C.READ_JOBS, C.WRITE_JOBS,
            C.READ_QUOTES,
            C.READ_INVOICES,
            C.READ_CLIENTS,
            C.READ_REPORTS,
            C.READ_TIME_ENTRIES, C.WRITE_TIME_ENTRIES,
            C.READ_EXPENSES,
            C.VIEW_ALL,
        ),
    },
    "Worker": {
        "rank": HierarchyRank.WORKER,
        "description": "Assigned jobs only - can add photos, notes, and track time",
        "permissions": (
            C.READ_JOBS,
            C.READ_CLIENTS,
            C.READ_TIME_ENTRIES, C.WRITE_TIME_ENTRIES,
            C.WRITE_JOB_NOTES,
            C.WRITE_JOB_MEDIA,
        ),
    },
}


def parse_capability(value: str | Capability) -> Capability:
    """Raises ValueError for tokens the system does not know."""
    if isinstance(value, Capability):
        return value
    return Capability((value or "").strip().lower())


def normalize_capabilities(values: Iterable[str | Capability] | None) -> tuple[Capability, ...]:
    """
    Parse, validate and de-duplicate a capability list, keeping first-seen order.
    Unknown tokens raise ValueError so they are rejected at write time.
    """
    if not values:
        return ()
    seen: dict[Capability, None] = {}
    for v in values:
        seen.setdefault(parse_capability(v), None)
    return tuple(seen)


def coerce_stored_capabilities(values: Iterable[str] | None) -> FrozenSet[Capability]:
    """
    Read-side counterpart of normalize_capabilities: stored tokens that are no
    longer known (e.g. a retired capability) grant nothing instead of failing
    the request.
    """
    out: set[Capability] = set()
    for v in values or ():
        try:
            out.add(parse_capability(v))
        except ValueError:
            logger.warning("Ignoring unknown stored capability token {!r}", v)
    return frozenset(out)


# ---------------------------------------------------------
# Permission gate
# ---------------------------------------------------------
def has_capability(context: "UserContext", required: str | Capability) -> bool:
    try:
        return parse_capability(required) in context.permissions
    except ValueError:
        return False


def has_any_capability(context: "UserContext", required: Iterable[str | Capability]) -> bool:
    return any(has_capability(context, r) for r in required)


def has_all_capabilities(context: "UserContext", required: Iterable[str | Capability]) -> bool:
    return all(has_capability(context, r) for r in required)


def require_capability(
    context: "UserContext",
    required: str | Capability | Sequence[str | Capability],
    *,
    mode: Literal["any", "all"] = "any",
) -> None:
    """
    Raise Forbidden unless the context holds the required capability.

    A single capability must be held. For a list, mode="any" (the default, for
    endpoints usable by several roles) needs at least one; mode="all" needs
    every one. An empty list is a programming error, not an open door.

    Owners pass because their permission set is ALL_CAPABILITIES; there is no
    separate owner branch here.
    """
    required_list = [required] if isinstance(required, (str, Capability)) else list(required)
    if not required_list:
        raise ValueError("require_capability needs at least one capability")

    if mode == "all":
        allowed = has_all_capabilities(context, required_list)
    else:
        allowed = has_any_capability(context, required_list)

    if not allowed:
        logger.info(
            "Capability denied: acting_id={} tenant_id={} required={} mode={}",
            context.acting_id,
            context.effective_tenant_id,
            [getattr(r, "value", r) for r in required_list],
            mode,
        )
        raise Forbidden()


def require_owner(context: "UserContext") -> None:
    """For the few actions reserved to the business owner (e.g. role management)."""
    if not context.is_owner:
        raise Forbidden("This action is restricted to business owners.")


# ---------------------------------------------------------
# Assigned-record access
# ---------------------------------------------------------
def is_full_admin(context: "UserContext") -> bool:
    return has_all_capabilities(context, (C.VIEW_ALL, C.MANAGE_TEAM))


def can_access_assigned_record(context: "UserContext", assigned_to) -> bool:
    """
    Media/notes access on a job-like record that carries an assignee.

    Allowed for the owner, for full admins (view_all + manage_team) and for
    holders of write_job_media / write_job_notes who are the assignee.
    view_all alone or write_jobs alone does not grant it. The assignee may be
    recorded either as the member's identity id or as their membership id.
    """
    if context.is_owner or is_full_admin(context):
        return True
    if not has_any_capability(context, (C.WRITE_JOB_MEDIA, C.WRITE_JOB_NOTES)):
        return False
    if assigned_to is None:
        return False
    assigned = str(assigned_to)
    if assigned == str(context.acting_id):
        return True
    return context.membership_id is not None and assigned == str(context.membership_id)
