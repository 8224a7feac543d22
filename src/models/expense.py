"""Expense and expense allocation ORM models."""

from decimal import Decimal

from sqlalchemy import JSON, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.models import Base, BaseModel


class Expense(Base, BaseModel):
    """Model representing one shared expense inside a trip.

    The payer is credited with ``total``; every allocation debits its member.
    The sum of allocations must match ``total`` within the configured
    allocation tolerance, which is enforced before the row is written.
    """

    __tablename__ = "expenses"

    trip_id: Mapped[str] = mapped_column(
        ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    vendor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    total: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, comment="Expense total in trip currency"
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    tax: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    tip: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    paid_by_member_id: Mapped[str] = mapped_column(String(40), nullable=False)
    shared_with_member_ids: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list, comment="Members the expense is shared with"
    )
    receipt_id: Mapped[str | None] = mapped_column(String(40), nullable=True)

    allocations: Mapped[list["ExpenseAllocation"]] = relationship(
        "ExpenseAllocation",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseAllocation.position",
        lazy="selectin",
    )

    __table_args__ = (Index("idx_expense_trip_created", "trip_id", "created_at"),)

    @property
    def expense_id(self) -> str:
        return self.id

    def __repr__(self) -> str:
        return (
            f"<Expense(id={self.id!r}, trip_id={self.trip_id!r}, total={self.total}, "
            f"paid_by={self.paid_by_member_id!r})>"
        )


class ExpenseAllocation(Base):
    """Portion of an expense assigned to one member."""

    __tablename__ = "expense_allocations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    expense_id: Mapped[str] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    member_id: Mapped[str] = mapped_column(String(40), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    expense: Mapped[Expense] = relationship("Expense", back_populates="allocations")

    def __repr__(self) -> str:
        return f"<ExpenseAllocation(member_id={self.member_id!r}, amount={self.amount})>"


__all__ = ["Expense", "ExpenseAllocation"]
