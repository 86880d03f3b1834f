# crewdesk/api/v1/roles.py
from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from crewdesk.api.deps.context import get_store, get_user_context
from crewdesk.api.deps.permissions import owner_only, require_capabilities
from crewdesk.auth.permissions import ROLE_TEMPLATES, Capability
from crewdesk.core.role_registry import RoleRegistry, effective_permissions
from crewdesk.core.roles import rank_label
from crewdesk.core.store import AuthzStore
from crewdesk.core.team_context import UserContext
from crewdesk.db.session import get_db
from crewdesk.schemas.role import CapabilityCatalogOut, RoleCreate, RoleOut, RoleUpdate

router = APIRouter(prefix="/roles", tags=["roles"])


def _out(role) -> RoleOut:
    return RoleOut.from_role(role, effective_permissions(role))


@router.get("/capabilities", response_model=CapabilityCatalogOut)
async def list_capabilities(_context: UserContext = Depends(get_user_context)):
    return CapabilityCatalogOut(
        capabilities=[c.value for c in Capability],
        templates={
            name: {
                "hierarchy_rank": rank_label(t["rank"]).upper(),
                "description": t["description"],
                "permissions": [p.value for p in t["permissions"]],
            }
            for name, t in ROLE_TEMPLATES.items()
        },
    )


@router.get("", response_model=List[RoleOut])
async def list_roles(
    db: AsyncSession = Depends(get_db),
    store: AuthzStore = Depends(get_store),
    context: UserContext = Depends(require_capabilities([Capability.MANAGE_TEAM, Capability.VIEW_ALL])),
):
    """Built-in Owner role first, then the tenant's own roles."""
    registry = RoleRegistry(store)
    owner_role = await registry.ensure_owner_role()
    await db.commit()
    roles = await registry.list_for_tenant(context.effective_tenant_id)
    return [_out(owner_role)] + [_out(r) for r in roles]


@router.post("", response_model=RoleOut, status_code=status.HTTP_201_CREATED)
async def create_role(
    payload: RoleCreate,
    db: AsyncSession = Depends(get_db),
    store: AuthzStore = Depends(get_store),
    context: UserContext = Depends(owner_only()),
):
    try:
        role = await RoleRegistry(store).create(
            context.effective_tenant_id,
            name=payload.name,
            permissions=payload.permissions,
            hierarchy_rank=payload.hierarchy_rank,
            description=payload.description,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    await db.commit()
    return _out(role)


@router.post("/seed-defaults", response_model=List[RoleOut])
async def seed_default_roles(
    db: AsyncSession = Depends(get_db),
    store: AuthzStore = Depends(get_store),
    context: UserContext = Depends(owner_only()),
):
    created = await RoleRegistry(store).seed_default_roles(context.effective_tenant_id)
    await db.commit()
    return [_out(r) for r in created]


@router.patch("/{role_id}", response_model=RoleOut)
async def update_role(
    role_id: uuid.UUID,
    payload: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    store: AuthzStore = Depends(get_store),
    context: UserContext = Depends(owner_only()),
):
    patch = payload.model_dump(exclude_unset=True)
    if not patch:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields provided to update.")
    try:
        role = await RoleRegistry(store).update(role_id, patch, tenant_id=context.effective_tenant_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    await db.commit()
    return _out(role)


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    store: AuthzStore = Depends(get_store),
    context: UserContext = Depends(owner_only()),
):
    await RoleRegistry(store).delete(role_id, tenant_id=context.effective_tenant_id)
    await db.commit()
    return None
