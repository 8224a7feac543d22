"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


def utc_now() -> datetime:
    """Current UTC time, used for every created/updated timestamp."""
    return datetime.now(timezone.utc)


class BaseModel:
    """Base model with a string primary key and timestamp fields."""

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from src.models.expense import Expense, ExpenseAllocation  # noqa: E402
from src.models.ledger import (  # noqa: E402
    LedgerAccess,
    LedgerEntry,
    LedgerEntryType,
    LedgerGroup,
    LedgerTransfer,
)
from src.models.receipt import Receipt, ReceiptStatus  # noqa: E402
from src.models.settlement import Settlement  # noqa: E402
from src.models.trip import Trip, TripMember  # noqa: E402
from src.models.user import UserProfile  # noqa: E402

__all__ = [
    "Base",
    "BaseModel",
    "utc_now",
    "UserProfile",
    "Trip",
    "TripMember",
    "Expense",
    "ExpenseAllocation",
    "Settlement",
    "Receipt",
    "ReceiptStatus",
    "LedgerEntry",
    "LedgerEntryType",
    "LedgerGroup",
    "LedgerTransfer",
    "LedgerAccess",
]
