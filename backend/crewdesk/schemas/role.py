from __future__ import annotations

from typing import List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from crewdesk.core.roles import HierarchyRank, RoleKind, rank_label


def _rank_to_int(v: Union[str, int]) -> int:
    if isinstance(v, int):
        return v
    s = str(v).strip()
    if s.isdigit():
        return int(s)
    try:
        return int(HierarchyRank[s.upper()])
    except KeyError:
        raise ValueError("hierarchy_rank must be MANAGER or WORKER")


class RoleCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    permissions: List[str] = Field(default_factory=list)
    hierarchy_rank: Union[int, str] = Field(default="WORKER", description="MANAGER or WORKER")

    @field_validator("hierarchy_rank")
    @classmethod
    def validate_rank(cls, v: Union[str, int]) -> int:
        return _rank_to_int(v)


class RoleUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    permissions: Optional[List[str]] = None
    hierarchy_rank: Optional[Union[int, str]] = None

    @field_validator("hierarchy_rank")
    @classmethod
    def validate_rank(cls, v: Optional[Union[str, int]]) -> Optional[int]:
        if v is None:
            return None
        return _rank_to_int(v)


class RoleOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    permissions: List[str]
    hierarchy_rank: str
    is_builtin: bool

    @classmethod
    def from_role(cls, role, permissions) -> "RoleOut":
        return cls(
            id=role.id,
            name=role.name,
            description=role.description,
            permissions=[getattr(p, "value", p) for p in permissions],
            hierarchy_rank=rank_label(role.hierarchy_rank).upper(),
            is_builtin=role.kind == RoleKind.BUILTIN.value,
        )


class CapabilityCatalogOut(BaseModel):
    capabilities: List[str]
    templates: dict
