"""Request and response schemas for the HTTP API.

Money fields are ``Decimal`` and serialize as strings, so clients never see
binary float artifacts.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.services.allocation_service import AllocationMode


class ErrorBody(BaseModel):
    """Error payload."""

    code: str
    message: str


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: ErrorBody


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserProfileResponse(BaseModel):
    user_id: str
    display_name: str | None = None
    email: str | None = None

    model_config = ConfigDict(from_attributes=True)


class UserSearchResponse(BaseModel):
    users: list[UserProfileResponse]


# ---------------------------------------------------------------------------
# Trips
# ---------------------------------------------------------------------------


class TripCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    start_date: str | None = None
    end_date: str | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    member_ids: list[str] = Field(default_factory=list)


class TripUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    start_date: str | None = None
    end_date: str | None = None


class TripResponse(BaseModel):
    trip_id: str
    owner_id: str
    name: str
    start_date: str | None = None
    end_date: str | None = None
    currency: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TripListResponse(BaseModel):
    trips: list[TripResponse]


class MemberResponse(BaseModel):
    member_id: str
    display_name: str
    email: str | None = None
    added_by: str

    model_config = ConfigDict(from_attributes=True)


class AddMembersRequest(BaseModel):
    member_ids: list[str] = Field(min_length=1)


class MembersResponse(BaseModel):
    members: list[MemberResponse]


class AllocationInput(BaseModel):
    member_id: str = Field(min_length=1)
    amount: Decimal = Field(ge=0)


class AllocationResponse(BaseModel):
    member_id: str
    amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class ExpenseCreateRequest(BaseModel):
    description: str = Field(min_length=1)
    vendor: str | None = None
    category: str | None = None
    total: Decimal = Field(gt=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    tax: Decimal | None = Field(default=None, ge=0)
    tip: Decimal | None = Field(default=None, ge=0)
    paid_by_member_id: str = Field(min_length=1)
    shared_with_member_ids: list[str] = Field(min_length=1)
    allocations: list[AllocationInput] | None = None
    split_evenly: bool = False
    remainder_member_id: str | None = None
    receipt_id: str | None = None


class ExpenseUpdateRequest(BaseModel):
    total: Decimal | None = Field(default=None, gt=0)
    tax: Decimal | None = Field(default=None, ge=0)
    tip: Decimal | None = Field(default=None, ge=0)
    shared_with_member_ids: list[str] | None = None
    allocations: list[AllocationInput] | None = None
    remainder_member_id: str | None = None


class ExpenseResponse(BaseModel):
    expense_id: str
    trip_id: str
    description: str
    vendor: str | None = None
    category: str | None = None
    total: Decimal
    currency: str
    tax: Decimal | None = None
    tip: Decimal | None = None
    paid_by_member_id: str
    shared_with_member_ids: list[str]
    allocations: list[AllocationResponse]
    receipt_id: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AllocationPreviewRequest(BaseModel):
    total: Decimal
    participant_ids: list[str]
    mode: AllocationMode = AllocationMode.EVEN
    remainder_member_id: str | None = None
    custom_amounts: dict[str, str] | None = None
    tax: Decimal | None = None
    tip: Decimal | None = None
    split_extras_evenly: bool = False


class AllocationDetailResponse(BaseModel):
    member_id: str
    base_amount: Decimal
    extras_share: Decimal
    amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class AllocationPreviewResponse(BaseModel):
    per_member: list[AllocationDetailResponse]
    total: Decimal
    delta: Decimal
    is_balanced: bool

    model_config = ConfigDict(from_attributes=True)


class SettlementCreateRequest(BaseModel):
    from_member_id: str = Field(min_length=1)
    to_member_id: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    note: str | None = None


class SettlementConfirmRequest(BaseModel):
    confirmed: bool = True


class SettlementResponse(BaseModel):
    settlement_id: str
    trip_id: str
    from_member_id: str
    to_member_id: str
    amount: Decimal
    currency: str
    note: str | None = None
    created_by: str
    created_at: datetime
    confirmed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class BalanceResponse(BaseModel):
    member_id: str
    display_name: str
    balance: Decimal

    model_config = ConfigDict(from_attributes=True)


class SuggestionResponse(BaseModel):
    from_member_id: str
    to_member_id: str
    amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class ReceiptCreateRequest(BaseModel):
    file_name: str = Field(min_length=1)
    content_type: str = Field(min_length=1)


class ReceiptResultRequest(BaseModel):
    """Extractor callback: either extracted fields or a failure reason."""

    extraction: dict[str, Any] | None = None
    failure_reason: str | None = None


class ReceiptResponse(BaseModel):
    receipt_id: str
    trip_id: str
    storage_key: str
    file_name: str
    content_type: str
    status: str
    extracted_data: dict[str, Any] | None = None
    failure_reason: str | None = None

    model_config = ConfigDict(from_attributes=True)


class ExpenseDraftResponse(BaseModel):
    description: str
    vendor: str | None = None
    total: Decimal | None = None
    tax: Decimal | None = None
    tip: Decimal | None = None
    date: str | None = None
    receipt_id: str | None = None
    line_items: list[dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class TripSummaryResponse(BaseModel):
    trip: TripResponse
    members: list[MemberResponse]
    expenses: list[ExpenseResponse]
    receipts: list[ReceiptResponse]
    settlements: list[SettlementResponse]
    balances: list[BalanceResponse]
    pending_settlements: list[SettlementResponse]
    suggestions: list[SuggestionResponse]
    current_user_id: str

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Group ledger
# ---------------------------------------------------------------------------


class LedgerEntryCreateRequest(BaseModel):
    type: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    description: str | None = None
    source: str | None = None
    category: str | None = None
    notes: str | None = None
    member_name: str | None = None
    group_id: str | None = None


class LedgerEntryGroupRequest(BaseModel):
    group_id: str | None = None


class LedgerEntryResponse(BaseModel):
    entry_id: str
    type: str = Field(validation_alias="entry_type")
    amount: Decimal
    currency: str
    description: str | None = None
    source: str | None = None
    category: str | None = None
    notes: str | None = None
    member_name: str | None = None
    group_id: str | None = None
    group_name: str | None = None
    recorded_by: str
    recorded_by_name: str | None = None
    recorded_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LedgerTransferCreateRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    from_group_id: str | None = None
    to_group_id: str | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    note: str | None = None


class LedgerTransferResponse(BaseModel):
    transfer_id: str
    amount: Decimal
    currency: str
    from_group_id: str | None = None
    from_group_name: str | None = None
    to_group_id: str | None = None
    to_group_name: str | None = None
    note: str | None = None
    created_by: str
    created_by_name: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LedgerGroupCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    group_id: str | None = None


class LedgerGroupUpdateRequest(BaseModel):
    is_active: bool


class LedgerGroupResponse(BaseModel):
    group_id: str
    name: str
    is_active: bool
    created_by: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LedgerTotalsResponse(BaseModel):
    donations: Decimal
    income: Decimal
    expenses: Decimal
    reimbursements: Decimal
    net: Decimal

    model_config = ConfigDict(from_attributes=True)


class BucketSummaryResponse(BaseModel):
    donations: Decimal
    income: Decimal
    expenses: Decimal
    reimbursements: Decimal
    transfers_in: Decimal
    transfers_out: Decimal
    net: Decimal

    model_config = ConfigDict(from_attributes=True)


class GroupSummaryResponse(BucketSummaryResponse):
    group_id: str
    name: str


class LedgerEntriesResponse(BaseModel):
    entries: list[LedgerEntryResponse]
    totals: LedgerTotalsResponse
    groups: list[LedgerGroupResponse]
    group_summaries: list[GroupSummaryResponse]
    unallocated: BucketSummaryResponse
    transfers: list[LedgerTransferResponse]

    model_config = ConfigDict(from_attributes=True)


class LedgerOverviewResponse(BaseModel):
    totals: LedgerTotalsResponse
    groups: list[GroupSummaryResponse]
    unallocated: BucketSummaryResponse
    transfers: list[LedgerTransferResponse]

    model_config = ConfigDict(from_attributes=True)


class LedgerAccessCreateRequest(BaseModel):
    user_id: str | None = None
    email: str | None = None
    display_name: str | None = None
    is_admin: bool = False


class LedgerAccessResponse(BaseModel):
    access_id: str
    user_id: str | None = None
    email: str | None = None
    display_name: str
    is_admin: bool
    added_by: str
    added_by_name: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LedgerAccessOverviewResponse(BaseModel):
    allowed: bool
    is_admin: bool
    members: list[LedgerAccessResponse] = Field(default_factory=list)
    current_access_id: str | None = None

    model_config = ConfigDict(from_attributes=True)
