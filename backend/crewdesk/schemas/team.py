from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class TeamInviteCreate(BaseModel):
    email: EmailStr
    role_id: UUID
    # When given, replaces the role's permissions for this member.
    custom_permissions: Optional[List[str]] = None


class TeamInviteOut(BaseModel):
    id: UUID
    owner_id: UUID
    member_id: Optional[UUID] = None
    email: EmailStr
    role_id: UUID
    invite_status: str
    invite_token: str
    invite_sent_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AcceptTeamInvite(BaseModel):
    token: str = Field(..., description="Invitation token")


class TeamMemberOut(BaseModel):
    id: UUID
    owner_id: UUID
    member_id: Optional[UUID] = None
    email: str
    role_id: UUID
    role_name: Optional[str] = None
    invite_status: str
    is_active: bool
    use_custom_permissions: bool
    custom_permissions: Optional[List[str]] = None
    invite_accepted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class TeamMemberRoleUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role_id: UUID


class TeamMemberPermissionsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    use_custom_permissions: bool
    custom_permissions: Optional[List[str]] = None


class AssignmentCheckRequest(BaseModel):
    target_member_id: UUID


class AssignmentCheckOut(BaseModel):
    allowed: bool
    reason: Optional[str] = None
