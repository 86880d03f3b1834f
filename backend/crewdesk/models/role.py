from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import JSON

from crewdesk.db.base import Base


class Role(Base):
    """
    A named, ordered bundle of capability tokens plus a hierarchy rank.

    kind=BUILTIN is the singleton Owner role (tenant_id NULL). Its stored
    permission list is ignored: the Owner grant is always computed from the
    capability enum (see RoleRegistry.effective_permissions).
    kind=CUSTOM roles belong to exactly one tenant (tenant_id = owner user id).
    """

    __tablename__ = "roles"
    __table_args__ = (
        Index("ix_roles_tenant_id", "tenant_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    kind: Mapped[str] = mapped_column(String(16), nullable=False, default="CUSTOM")  # BUILTIN | CUSTOM
    tenant_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Stored as JSON array of capability strings, order preserved
    permissions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    hierarchy_rank: Mapped[int] = mapped_column(Integer, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
