# crewdesk/core/role_registry.py
from __future__ import annotations

import uuid
from typing import Any, FrozenSet, Iterable, Mapping, Optional

from loguru import logger

from crewdesk.auth.permissions import (
    ALL_CAPABILITIES,
    ROLE_TEMPLATES,
    Capability,
    coerce_stored_capabilities,
    normalize_capabilities,
)
from crewdesk.core.errors import Conflict, Forbidden, NotFound
from crewdesk.core.roles import (
    OWNER_ROLE_NAME,
    HierarchyRank,
    RoleKind,
    is_owner_role_name,
    normalize_role_name,
)
from crewdesk.core.store import AuthzStore
from crewdesk.models.role import Role

ASSIGNABLE_RANKS = frozenset({HierarchyRank.MANAGER, HierarchyRank.WORKER})
ROLE_PATCH_FIELDS = frozenset({"name", "description", "permissions", "hierarchy_rank"})


def is_builtin_owner(role: Role) -> bool:
    # Either marker is enough: the kind survives renames, the name survives id rotation.
    return role.kind == RoleKind.BUILTIN.value or is_owner_role_name(role.name)


def effective_permissions(role: Role) -> FrozenSet[Capability]:
    if role.kind == RoleKind.BUILTIN.value:
        return ALL_CAPABILITIES
    return coerce_stored_capabilities(role.permissions)


def parse_assignable_rank(value: Any) -> HierarchyRank:
    try:
        rank = HierarchyRank(int(value))
    except (TypeError, ValueError):
        raise ValueError(f"Unknown hierarchy rank: {value!r}")
    if rank == HierarchyRank.OWNER:
        raise Forbidden("Custom roles cannot hold the owner rank.")
    return rank


class RoleRegistry:
    """
    CRUD over roles. The built-in Owner role can be resolved but never
    created, edited or deleted through here.
    """

    def __init__(self, store: AuthzStore) -> None:
        self.store = store

    async def ensure_owner_role(self) -> Role:
        role = await self.store.find_builtin_role()
        if role is not None:
            return role
        role = Role(
            id=uuid.uuid4(),
            kind=RoleKind.BUILTIN.value,
            tenant_id=None,
            name=OWNER_ROLE_NAME,
            description="Full access to all features",
            permissions=[c.value for c in Capability],
            hierarchy_rank=int(HierarchyRank.OWNER),
            is_active=True,
        )
        logger.info("Seeding built-in {} role {}", OWNER_ROLE_NAME, role.id)
        return await self.store.add_role(role)

    async def resolve(self, role_id: uuid.UUID) -> Role:
        role = await self.store.find_role(role_id)
        if role is None:
            raise NotFound("Role not found.")
        return role

    async def resolve_for_tenant(self, role_id: uuid.UUID, tenant_id: uuid.UUID) -> Role:
        """Like resolve(), but another tenant's role looks exactly like a missing one."""
        role = await self.resolve(role_id)
        if role.tenant_id != tenant_id or role.is_active is not True:
            raise NotFound("Role not found.")
        return role

    async def list_for_tenant(self, tenant_id: uuid.UUID) -> list[Role]:
        return await self.store.list_roles(tenant_id)

    async def create(
        self,
        tenant_id: uuid.UUID,
        *,
        name: str,
        permissions: Iterable[str | Capability],
        hierarchy_rank: int,
        description: Optional[str] = None,
    ) -> Role:
        clean_name = await self._checked_name(tenant_id, name)
        rank = parse_assignable_rank(hierarchy_rank)
        perms = normalize_capabilities(permissions)

        role = Role(
            id=uuid.uuid4(),
            kind=RoleKind.CUSTOM.value,
            tenant_id=tenant_id,
            name=clean_name,
            description=description,
            permissions=[p.value for p in perms],
            hierarchy_rank=int(rank),
            is_active=True,
        )
        role = await self.store.add_role(role)
        logger.info("Role {} ({}) created for tenant {}", role.id, clean_name, tenant_id)
        return role

    async def update(
        self,
        role_id: uuid.UUID,
        patch: Mapping[str, Any],
        *,
        tenant_id: Optional[uuid.UUID] = None,
    ) -> Role:
        role = await self.resolve(role_id)
        self._guard_mutable(role)
        if tenant_id is not None and role.tenant_id != tenant_id:
            raise NotFound("Role not found.")

        unknown = set(patch) - ROLE_PATCH_FIELDS
        if unknown:
            raise ValueError(f"Role fields not updatable: {sorted(unknown)}")

        if "name" in patch:
            role.name = await self._checked_name(role.tenant_id, patch["name"], exclude_id=role.id)
        if "description" in patch:
            role.description = patch["description"]
        if "permissions" in patch:
            role.permissions = [p.value for p in normalize_capabilities(patch["permissions"])]
        if "hierarchy_rank" in patch:
            role.hierarchy_rank = int(parse_assignable_rank(patch["hierarchy_rank"]))

        role = await self.store.save_role(role)
        logger.info("Role {} updated: fields={}", role.id, sorted(patch))
        return role

    async def delete(self, role_id: uuid.UUID, *, tenant_id: Optional[uuid.UUID] = None) -> None:
        """
        Soft delete. Refused while any non-revoked membership still uses the
        role, so nobody silently loses (or keeps) permissions through it.
        """
        role = await self.resolve(role_id)
        self._guard_mutable(role)
        if tenant_id is not None and role.tenant_id != tenant_id:
            raise NotFound("Role not found.")

        in_use = await self.store.count_role_members(role.id)
        if in_use:
            raise Conflict(f"Role is assigned to {in_use} team member(s). Reassign them first.")

        role.is_active = False
        await self.store.save_role(role)
        logger.info("Role {} deleted", role.id)

    async def seed_default_roles(self, tenant_id: uuid.UUID) -> list[Role]:
        """Create any missing template roles for a tenant; existing names are left alone."""
        existing = {r.name.casefold() for r in await self.store.list_roles(tenant_id)}
        created: list[Role] = []
        for name, template in ROLE_TEMPLATES.items():
            if name.casefold() in existing:
                continue
            created.append(
                await self.create(
                    tenant_id,
                    name=name,
                    permissions=template["permissions"],
                    hierarchy_rank=template["rank"],
                    description=template["description"],
                )
            )
        return created

    # ---------------------------------------------------------
    # helpers
    # ---------------------------------------------------------
    @staticmethod
    def _guard_mutable(role: Role) -> None:
        if is_builtin_owner(role):
            raise Forbidden("The Owner role is built in and cannot be changed.")

    async def _checked_name(
        self,
        tenant_id: Optional[uuid.UUID],
        name: str,
        *,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> str:
        clean = normalize_role_name(name)
        if not clean:
            raise ValueError("Role name is required.")
        if is_owner_role_name(clean):
            raise Forbidden("The Owner role is built in and cannot be changed.")
        if tenant_id is not None:
            for other in await self.store.list_roles(tenant_id):
                if other.id != exclude_id and other.name.casefold() == clean.casefold():
                    raise Conflict("A role with this name already exists.")
        return clean
