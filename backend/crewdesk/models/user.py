# backend/crewdesk/models/user.py
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Boolean
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from crewdesk.db.base import Base

ACCOUNT_TYPE_OWNER = "OWNER"
ACCOUNT_TYPE_MEMBER = "MEMBER"


class User(Base):
    """
    An identity. Never hard-deleted: account removal flips is_active so that
    historical references (assignments, memberships) stay resolvable.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    email: Mapped[str] = mapped_column(String(320), unique=True, index=True, nullable=False)

    # Email-first magic code auth
    magic_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    magic_code_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    full_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Role hint only (OWNER | MEMBER). Tenant ownership is decided from
    # team memberships at request time, never from this column.
    account_type: Mapped[str] = mapped_column(String(16), nullable=False, default=ACCOUNT_TYPE_OWNER)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    @staticmethod
    def normalize_email(value: str) -> str:
        return value.strip().lower()

    @staticmethod
    def normalize_full_name(value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        v = " ".join(value.strip().split())
        return v or None
