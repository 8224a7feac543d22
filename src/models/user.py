"""User profile ORM model for callers identified by the upstream authorizer."""

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel


class UserProfile(Base, BaseModel):
    """
    Profile of a person known to the system.

    The primary key is the identity provider's subject id, so a profile is
    created lazily the first time a caller hits any endpoint. The lower-cased
    display name backs prefix search when adding trip members.
    """

    __tablename__ = "user_profiles"

    display_name: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="Name shown to other members"
    )
    display_name_lower: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Lower-cased display name for prefix search",
    )
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (Index("idx_user_profile_name_lower", "display_name_lower"),)

    @property
    def user_id(self) -> str:
        return self.id

    @property
    def resolved_name(self) -> str:
        """Display name falling back to email, then to the raw user id."""
        return self.display_name or self.email or self.id

    def __repr__(self) -> str:
        return f"<UserProfile(id={self.id!r}, display_name={self.display_name!r})>"


__all__ = ["UserProfile"]
