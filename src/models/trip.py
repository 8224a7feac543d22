"""Trip and trip member ORM models."""

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class Trip(Base, BaseModel):
    """A shared-expense group (a trip, a flat, a dinner club).

    Expenses, settlements and receipts all hang off a trip. Balances are never
    stored here; they are derived from the trip's records on every read.
    """

    __tablename__ = "trips"

    owner_id: Mapped[str] = mapped_column(
        String(40), nullable=False, index=True, comment="User who created the trip"
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    start_date: Mapped[str | None] = mapped_column(
        String(10), nullable=True, comment="ISO-8601 date"
    )
    end_date: Mapped[str | None] = mapped_column(
        String(10), nullable=True, comment="ISO-8601 date"
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    members: Mapped[list["TripMember"]] = relationship(
        "TripMember",
        back_populates="trip",
        cascade="all, delete-orphan",
        order_by="TripMember.position",
        lazy="selectin",
    )

    @property
    def trip_id(self) -> str:
        return self.id

    def __repr__(self) -> str:
        return f"<Trip(id={self.id!r}, name={self.name!r}, owner_id={self.owner_id!r})>"


class TripMember(Base, BaseModel):
    """Membership of a user in a trip, scoped to that trip."""

    __tablename__ = "trip_members"

    trip_id: Mapped[str] = mapped_column(
        ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True
    )
    member_id: Mapped[str] = mapped_column(
        String(40), nullable=False, index=True, comment="UserProfile id"
    )
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    added_by: Mapped[str] = mapped_column(String(40), nullable=False)
    position: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, comment="Order in which the member joined"
    )

    trip: Mapped[Trip] = relationship("Trip", back_populates="members")

    __table_args__ = (
        UniqueConstraint("trip_id", "member_id", name="uq_trip_member"),
        Index("idx_trip_member_member", "member_id", "trip_id"),
    )

    def __repr__(self) -> str:
        return f"<TripMember(trip_id={self.trip_id!r}, member_id={self.member_id!r})>"


__all__ = ["Trip", "TripMember"]
