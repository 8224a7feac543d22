"""Settlement ORM model for member-to-member payments."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel


class Settlement(Base, BaseModel):
    """Model representing a recorded payment between two trip members.

    Lifecycle: created pending (``confirmed_at`` unset), then confirmed or
    deleted. Only confirmed settlements move balances.
    """

    __tablename__ = "settlements"

    trip_id: Mapped[str] = mapped_column(
        ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_member_id: Mapped[str] = mapped_column(
        String(40), nullable=False, comment="Member who paid"
    )
    to_member_id: Mapped[str] = mapped_column(
        String(40), nullable=False, comment="Member who received the payment"
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_by: Mapped[str] = mapped_column(String(40), nullable=False)
    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, comment="Set once the payment is confirmed"
    )

    __table_args__ = (
        CheckConstraint("from_member_id <> to_member_id", name="ck_settlement_parties"),
        CheckConstraint("amount > 0", name="ck_settlement_amount"),
    )

    @property
    def settlement_id(self) -> str:
        return self.id

    @property
    def is_confirmed(self) -> bool:
        return self.confirmed_at is not None

    def __repr__(self) -> str:
        return (
            f"<Settlement(id={self.id!r}, from={self.from_member_id!r}, "
            f"to={self.to_member_id!r}, amount={self.amount}, "
            f"confirmed={self.is_confirmed})>"
        )


__all__ = ["Settlement"]
