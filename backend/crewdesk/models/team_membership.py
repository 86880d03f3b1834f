# backend/crewdesk/models/team_membership.py

import uuid
from datetime import datetime

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import JSON

from crewdesk.db.base import Base

INVITE_PENDING = "pending"
INVITE_ACCEPTED = "accepted"
INVITE_REVOKED = "revoked"


class TeamMembership(Base):
    """
    Links a member identity to a business owner (the tenant).

    Grants access only while invite_status == accepted AND is_active. Rows are
    never deleted: revocation and deactivation are state changes so that past
    assignments keep pointing at a real member.
    """

    __tablename__ = "team_memberships"
    __table_args__ = (
        UniqueConstraint("invite_token", name="uq_team_memberships_invite_token"),
        Index("ix_team_memberships_member_id", "member_id"),
        Index("ix_team_memberships_owner_email", "owner_id", "email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    # NULL until an invite sent to an unknown email is accepted
    member_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
    )
    role_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("roles.id"),
        nullable=False,
    )

    # Invite lifecycle: pending -> accepted | revoked
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    invite_status: Mapped[str] = mapped_column(String(16), nullable=False, default=INVITE_PENDING)
    invite_token: Mapped[str | None] = mapped_column(String(200), nullable=True)
    invite_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    invite_accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Per-member override. When use_custom_permissions is true this list
    # replaces the role's permissions entirely.
    custom_permissions: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    use_custom_permissions: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Independent of invite_status: an accepted member can be deactivated.
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def grants_access(self) -> bool:
        return self.invite_status == INVITE_ACCEPTED and self.is_active is True
