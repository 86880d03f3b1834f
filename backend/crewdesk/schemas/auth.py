# backend/crewdesk/schemas/auth.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class MagicCodeRequest(BaseModel):
    email: EmailStr


class MagicCodeVerify(BaseModel):
    email: EmailStr
    code: str = Field(min_length=4, max_length=64)


class TokenResponse(BaseModel):
    # Same value as the session cookie; for clients that cannot keep cookies.
    access_token: str
    token_type: str = "bearer"


class ContextOut(BaseModel):
    effective_tenant_id: str
    is_owner: bool
    membership_id: Optional[str] = None
    permissions: List[str] = []
    hierarchy_rank: str


class MembershipStateOut(BaseModel):
    code: str
    message: str
    invite_status: str
    is_active: bool


class MeResponse(BaseModel):
    id: str
    email: EmailStr
    full_name: Optional[str] = None
    is_active: bool

    # Exactly one of these is set.
    context: Optional[ContextOut] = None
    membership_state: Optional[MembershipStateOut] = None
