"""Receipt service: upload registration, extraction results and expense drafts.

Object storage and text extraction run outside this service. A receipt is
registered before the upload, and the extractor reports back either the
structured fields it found or the reason it failed.
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.models.receipt import Receipt, ReceiptStatus
from src.services.auth_service import AuthContext
from src.services.errors import ForbiddenError, NotFoundError, ValidationError
from src.services.money import generate_id, round_cents
from src.services.trip_service import TripService

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9.\-_]")
_NON_NUMERIC_CHARS = re.compile(r"[^0-9.\-]")

DRAFT_DESCRIPTION = "Receipt expense"


def sanitize_file_name(file_name: str) -> str:
    """Replace anything outside ``[a-zA-Z0-9.-_]`` with an underscore."""
    return _UNSAFE_NAME_CHARS.sub("_", file_name)


def build_storage_key(trip_id: str, receipt_id: str, file_name: str) -> str:
    """Object storage key for a receipt: ``trips/<trip>/receipts/<id>.<ext>``."""
    sanitized = sanitize_file_name(file_name)
    extension = sanitized.rsplit(".", 1)[-1] if "." in sanitized else "bin"
    return f"trips/{trip_id}/receipts/{receipt_id}.{extension}"


def parse_summary_number(value: Any) -> Optional[Decimal]:
    """
    Parse an amount as printed on a receipt (``"$1,234.50"`` -> 1234.50).

    Returns:
        Cent-rounded Decimal, or None when nothing numeric is left
    """
    if value is None:
        return None
    if isinstance(value, (int, float, Decimal)):
        return round_cents(value)
    normalized = _NON_NUMERIC_CHARS.sub("", str(value))
    if not normalized:
        return None
    try:
        parsed = Decimal(normalized)
    except InvalidOperation:
        return None
    if not parsed.is_finite():
        return None
    return round_cents(parsed)


def _clean_text(value: Any) -> Optional[str]:
    # Extractors may send numbers or nested objects where text is expected
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value).strip() or None


@dataclass
class ExpenseDraft:
    """Prefilled expense fields taken from a receipt extraction."""

    description: str
    vendor: Optional[str] = None
    total: Optional[Decimal] = None
    tax: Optional[Decimal] = None
    tip: Optional[Decimal] = None
    date: Optional[str] = None
    receipt_id: Optional[str] = None
    line_items: List[Dict[str, Any]] = field(default_factory=list)


def draft_from_extraction(
    extraction: Dict[str, Any], receipt_id: Optional[str] = None
) -> ExpenseDraft:
    """
    Build an expense draft from extracted receipt fields.

    Recognized keys: ``merchant_name``, ``total``, ``subtotal``, ``tax``,
    ``tip``, ``date`` and ``line_items``. Without a total, the subtotal plus
    tax and tip is used.
    """
    vendor = _clean_text(extraction.get("merchant_name"))
    line_items = extraction.get("line_items")
    if not isinstance(line_items, list):
        line_items = []
    tax = parse_summary_number(extraction.get("tax"))
    tip = parse_summary_number(extraction.get("tip"))
    total = parse_summary_number(extraction.get("total"))
    if total is None:
        subtotal = parse_summary_number(extraction.get("subtotal"))
        if subtotal is not None:
            total = round_cents(subtotal + (tax or 0) + (tip or 0))

    return ExpenseDraft(
        description=vendor or DRAFT_DESCRIPTION,
        vendor=vendor,
        total=total,
        tax=tax,
        tip=tip,
        date=_clean_text(extraction.get("date")),
        receipt_id=receipt_id,
        line_items=[item for item in line_items if isinstance(item, dict)],
    )


class ReceiptService:
    """Service for receipt lifecycle operations."""

    def __init__(self, session: AsyncSession, trips: Optional[TripService] = None):
        """Initialize with database session."""
        self.session = session
        self.trips = trips or TripService(session)

    async def create_receipt(
        self, trip_id: str, file_name: str, content_type: str, auth: AuthContext
    ) -> Receipt:
        """
        Register a receipt upload for a trip member.

        Raises:
            ValidationError: If file name or content type is missing
            ForbiddenError: If the caller is not a trip member
        """
        if not file_name or not file_name.strip():
            raise ValidationError("File name is required")
        if not content_type or not content_type.strip():
            raise ValidationError("Content type is required")

        await self._require_trip_member(trip_id, auth)

        receipt_id = generate_id("rcpt_")
        receipt = Receipt(
            id=receipt_id,
            trip_id=trip_id,
            storage_key=build_storage_key(trip_id, receipt_id, file_name.strip()),
            file_name=file_name.strip(),
            content_type=content_type.strip(),
            status=ReceiptStatus.PENDING_UPLOAD.value,
        )
        self.session.add(receipt)
        await self.session.commit()

        logger.info("Registered receipt %s trip=%s key=%s", receipt_id, trip_id, receipt.storage_key)
        return receipt

    async def _require_trip_member(self, trip_id: str, auth: AuthContext) -> None:
        details = await self.trips.get_trip_details(trip_id)
        if not details.is_member(auth.user_id):
            raise ForbiddenError("You are not part of this trip")

    async def _get_receipt(self, trip_id: str, receipt_id: str) -> Receipt:
        receipt = await self.session.get(Receipt, receipt_id)
        if receipt is None or receipt.trip_id != trip_id:
            raise NotFoundError("Receipt not found")
        return receipt

    async def record_extraction(
        self, trip_id: str, receipt_id: str, extraction: Dict[str, Any], auth: AuthContext
    ) -> Receipt:
        """
        Store extracted fields and mark the receipt COMPLETED.

        Raises:
            ForbiddenError: If the caller is not a trip member
        """
        await self._require_trip_member(trip_id, auth)
        receipt = await self._get_receipt(trip_id, receipt_id)
        receipt.extracted_data = dict(extraction)
        receipt.status = ReceiptStatus.COMPLETED.value
        receipt.failure_reason = None
        await self.session.commit()
        logger.info("Receipt %s extraction completed", receipt_id)
        return receipt

    async def record_failure(
        self, trip_id: str, receipt_id: str, reason: str, auth: AuthContext
    ) -> Receipt:
        """Mark the receipt FAILED with the extractor's reason."""
        await self._require_trip_member(trip_id, auth)
        receipt = await self._get_receipt(trip_id, receipt_id)
        receipt.status = ReceiptStatus.FAILED.value
        receipt.failure_reason = (reason or "Unknown error")[:500]
        await self.session.commit()
        logger.warning("Receipt %s extraction failed: %s", receipt_id, receipt.failure_reason)
        return receipt

    async def get_expense_draft(
        self, trip_id: str, receipt_id: str, auth: AuthContext
    ) -> ExpenseDraft:
        """
        Expense draft for a completed receipt.

        Raises:
            ValidationError: If the receipt has no extraction yet
        """
        await self._require_trip_member(trip_id, auth)
        receipt = await self._get_receipt(trip_id, receipt_id)
        if receipt.status != ReceiptStatus.COMPLETED.value or not receipt.extracted_data:
            raise ValidationError("Receipt has not been processed yet")
        return draft_from_extraction(receipt.extracted_data, receipt_id=receipt.id)


__all__ = [
    "ExpenseDraft",
    "ReceiptService",
    "build_storage_key",
    "draft_from_extraction",
    "parse_summary_number",
]
