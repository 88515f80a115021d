"""
Role, group, membership and individual override tables.

Capability grants are stored as a JSON object of {capability name: bool}.
Records are read back through CapabilitySet.from_mapping, so capabilities
added to the catalog later read as False on existing rows.
"""
from datetime import datetime
from typing import Any, Dict
from sqlalchemy import String, ForeignKey, JSON, Text, DateTime, Boolean, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from permission_engine.core.database.base import Base, TimestampMixin, generate_ulid


class RoleRecord(Base, TimestampMixin):
    """
    Role: a user's single baseline capability grant.

    Examples: Admin, Manager, Editor
    """
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # {"canSeeProjects": true, "canEditProjects": true, ...}
    permissions: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<RoleRecord(id={self.id}, name={self.name!r}, active={self.is_active})>"


class UserGroupRecord(Base, TimestampMixin):
    """
    Group: a supplemental capability grant shared by its members.

    Deactivating a group revokes its grant for every member immediately;
    memberships are left in place.
    """
    __tablename__ = "user_groups"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    permissions: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<UserGroupRecord(id={self.id}, name={self.name!r}, active={self.is_active})>"


class MembershipRecord(Base):
    """User-to-group join record. Created and removed, never updated."""
    __tablename__ = "user_group_memberships"
    __table_args__ = (UniqueConstraint("user_id", "group_id", name="uq_membership_user_group"),)

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    group_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("user_groups.id", ondelete="CASCADE"), nullable=False, index=True
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    assigned_by_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<MembershipRecord(user_id={self.user_id}, group_id={self.group_id})>"


class OverrideRecord(Base, TimestampMixin):
    """
    Individual override: additional grants for one user beyond role and groups.

    At most one per user.
    """
    __tablename__ = "user_permissions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False, index=True
    )
    permissions: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    assigned_by_id: Mapped[str | None] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<OverrideRecord(id={self.id}, user_id={self.user_id})>"
