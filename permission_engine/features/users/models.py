"""
User model with ULID primary keys.
"""
from sqlalchemy import String, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from permission_engine.core.database.base import Base, TimestampMixin, generate_ulid


class User(Base, TimestampMixin):
    """
    User record as far as permission resolution needs it.

    Each user holds at most one role; the role's capabilities are the user's
    baseline grant.
    """
    __tablename__ = "users"

    # Primary key using ULID (Universally Unique Lexicographically Sortable Identifier)
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Single role reference; deleting a referenced role is refused by the role store
    role_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("roles.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, role_id={self.role_id})>"
