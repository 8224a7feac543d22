"""Receipt ORM model tracking uploads and their extracted fields."""

from enum import Enum

from sqlalchemy import JSON, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models import Base, BaseModel


class ReceiptStatus(str, Enum):
    """Processing state of an uploaded receipt."""

    PENDING_UPLOAD = "PENDING_UPLOAD"
    UPLOADED = "UPLOADED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Receipt(Base, BaseModel):
    """Model representing a receipt image or PDF attached to a trip.

    The file lives in external object storage under ``storage_key``; text
    extraction happens outside this service and is recorded back as
    ``extracted_data`` (vendor, totals, line items).
    """

    __tablename__ = "receipts"

    trip_id: Mapped[str] = mapped_column(
        ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True
    )
    storage_key: Mapped[str] = mapped_column(String(500), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[ReceiptStatus] = mapped_column(
        String(20), nullable=False, default=ReceiptStatus.PENDING_UPLOAD
    )
    extracted_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    @property
    def receipt_id(self) -> str:
        return self.id

    def __repr__(self) -> str:
        return f"<Receipt(id={self.id!r}, trip_id={self.trip_id!r}, status={self.status})>"


__all__ = ["Receipt", "ReceiptStatus"]
