"""Group ledger ORM models: entries, groups, transfers and access records.

The group ledger is a second, collective bookkeeping surface independent of
trips. Entries belong to a named group or, when ``group_id`` is empty, to the
unallocated pool. Transfers move money between groups (or between a group and
the pool) without representing new cash.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel, utc_now


class LedgerEntryType(str, Enum):
    """Kind of money movement an entry records."""

    DONATION = "DONATION"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    REIMBURSEMENT = "REIMBURSEMENT"


class LedgerGroup(Base, BaseModel):
    """A named sub-ledger. Summaries are computed, never stored."""

    __tablename__ = "ledger_groups"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[str] = mapped_column(String(40), nullable=False)

    @property
    def group_id(self) -> str:
        return self.id

    def __repr__(self) -> str:
        return f"<LedgerGroup(id={self.id!r}, name={self.name!r}, active={self.is_active})>"


class LedgerEntry(Base, BaseModel):
    """Model representing one donation, income, expense or reimbursement."""

    __tablename__ = "ledger_entries"

    entry_type: Mapped[LedgerEntryType] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    source: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    member_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Empty group means the entry sits in the unallocated pool
    group_id: Mapped[str | None] = mapped_column(String(40), nullable=True, index=True)
    group_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    recorded_by: Mapped[str] = mapped_column(String(40), nullable=False)
    recorded_by_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_ledger_entry_amount"),
        Index("idx_ledger_entry_recorded", "recorded_at"),
    )

    @property
    def entry_id(self) -> str:
        return self.id

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry(id={self.id!r}, type={self.entry_type}, amount={self.amount}, "
            f"group_id={self.group_id!r})>"
        )


class LedgerTransfer(Base, BaseModel):
    """Model representing a reallocation between two buckets."""

    __tablename__ = "ledger_transfers"

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    from_group_id: Mapped[str | None] = mapped_column(String(40), nullable=True)
    from_group_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    to_group_id: Mapped[str | None] = mapped_column(String(40), nullable=True)
    to_group_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_by: Mapped[str] = mapped_column(String(40), nullable=False)
    created_by_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (CheckConstraint("amount > 0", name="ck_ledger_transfer_amount"),)

    @property
    def transfer_id(self) -> str:
        return self.id

    def __repr__(self) -> str:
        return (
            f"<LedgerTransfer(id={self.id!r}, from={self.from_group_id!r}, "
            f"to={self.to_group_id!r}, amount={self.amount})>"
        )


class LedgerAccess(Base, BaseModel):
    """Grant of access to the group ledger, by user id or by email."""

    __tablename__ = "ledger_access"

    user_id: Mapped[str | None] = mapped_column(String(40), nullable=True, unique=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    normalized_email: Mapped[str | None] = mapped_column(
        String(255), nullable=True, unique=True, comment="Trimmed, lower-cased email"
    )
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    added_by: Mapped[str] = mapped_column(String(40), nullable=False)
    added_by_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    @property
    def access_id(self) -> str:
        return self.id

    def __repr__(self) -> str:
        return f"<LedgerAccess(id={self.id!r}, user_id={self.user_id!r}, admin={self.is_admin})>"


__all__ = [
    "LedgerAccess",
    "LedgerEntry",
    "LedgerEntryType",
    "LedgerGroup",
    "LedgerTransfer",
]
