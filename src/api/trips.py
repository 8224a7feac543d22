"""Trip API endpoints: trips, members, expenses, settlements and receipts."""

import logging
import time

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.schemas import (
    AddMembersRequest,
    AllocationPreviewRequest,
    AllocationPreviewResponse,
    BalanceResponse,
    ExpenseCreateRequest,
    ExpenseDraftResponse,
    ExpenseResponse,
    ExpenseUpdateRequest,
    MemberResponse,
    MembersResponse,
    ReceiptCreateRequest,
    ReceiptResponse,
    ReceiptResultRequest,
    SettlementConfirmRequest,
    SettlementCreateRequest,
    SettlementResponse,
    SuggestionResponse,
    TripCreateRequest,
    TripListResponse,
    TripResponse,
    TripSummaryResponse,
    TripUpdateRequest,
)
from src.services import get_async_session
from src.services.auth_service import AuthContext, get_auth_context
from src.services.errors import ValidationError
from src.services.receipt_service import ReceiptService
from src.services.trip_service import TripService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/trips", tags=["trips"])


def _allocation_pairs(allocations):
    if allocations is None:
        return None
    return [(item.member_id, item.amount) for item in allocations]


@router.get("", response_model=TripListResponse)
async def list_trips(
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> TripListResponse:
    """Trips the caller is a member of."""
    trips = await TripService(session).list_trips(auth)
    return TripListResponse(trips=[TripResponse.model_validate(trip) for trip in trips])


@router.post("", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def create_trip(
    body: TripCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> TripResponse:
    trip = await TripService(session).create_trip(
        auth,
        name=body.name,
        start_date=body.start_date,
        end_date=body.end_date,
        currency=body.currency,
        member_ids=body.member_ids,
    )
    return TripResponse.model_validate(trip)


@router.get("/{trip_id}", response_model=TripSummaryResponse)
async def get_trip(
    trip_id: str,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> TripSummaryResponse:
    """Trip with members, expenses, balances and settlement suggestions."""
    start_time = time.time()
    summary = await TripService(session).get_trip_summary(trip_id, auth)
    response = TripSummaryResponse(
        trip=TripResponse.model_validate(summary.trip),
        members=[MemberResponse.model_validate(m) for m in summary.members],
        expenses=[ExpenseResponse.model_validate(e) for e in summary.expenses],
        receipts=[ReceiptResponse.model_validate(r) for r in summary.receipts],
        settlements=[SettlementResponse.model_validate(s) for s in summary.settlements],
        balances=[BalanceResponse(**row._asdict()) for row in summary.balances],
        pending_settlements=[
            SettlementResponse.model_validate(s) for s in summary.pending_settlements
        ],
        suggestions=[SuggestionResponse(**s._asdict()) for s in summary.suggestions],
        current_user_id=summary.current_user_id,
    )
    logger.debug(
        "trips.get: trip_id=%s user_id=%s expenses=%d duration_ms=%d",
        trip_id,
        auth.user_id,
        len(summary.expenses),
        int((time.time() - start_time) * 1000),
    )
    return response


@router.patch("/{trip_id}", response_model=TripResponse)
async def update_trip(
    trip_id: str,
    body: TripUpdateRequest,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> TripResponse:
    """Update name or dates. Sending ``null`` for a date clears it."""
    trip = await TripService(session).update_trip(
        trip_id, body.model_dump(exclude_unset=True), auth
    )
    return TripResponse.model_validate(trip)


@router.post(
    "/{trip_id}/members", response_model=MembersResponse, status_code=status.HTTP_201_CREATED
)
async def add_members(
    trip_id: str,
    body: AddMembersRequest,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> MembersResponse:
    members = await TripService(session).add_members(trip_id, body.member_ids, auth)
    return MembersResponse(members=[MemberResponse.model_validate(m) for m in members])


@router.delete("/{trip_id}/members/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    trip_id: str,
    member_id: str,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> Response:
    await TripService(session).remove_member(trip_id, member_id, auth)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{trip_id}/allocations/preview", response_model=AllocationPreviewResponse)
async def preview_allocations(
    trip_id: str,
    body: AllocationPreviewRequest,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> AllocationPreviewResponse:
    """Shares and delta for a draft expense; nothing is saved."""
    result = await TripService(session).preview_allocations(
        trip_id,
        auth,
        body.total,
        body.participant_ids,
        mode=body.mode,
        remainder_target_id=body.remainder_member_id,
        custom_amounts=body.custom_amounts,
        tax=body.tax,
        tip=body.tip,
        split_extras_evenly=body.split_extras_evenly,
    )
    return AllocationPreviewResponse.model_validate(result)


@router.post(
    "/{trip_id}/expenses", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED
)
async def create_expense(
    trip_id: str,
    body: ExpenseCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> ExpenseResponse:
    expense = await TripService(session).create_expense(
        trip_id,
        auth,
        description=body.description,
        total=body.total,
        paid_by_member_id=body.paid_by_member_id,
        shared_with_member_ids=body.shared_with_member_ids,
        currency=body.currency,
        vendor=body.vendor,
        category=body.category,
        tax=body.tax,
        tip=body.tip,
        allocations=_allocation_pairs(body.allocations),
        split_evenly=body.split_evenly,
        remainder_member_id=body.remainder_member_id,
        receipt_id=body.receipt_id,
    )
    return ExpenseResponse.model_validate(expense)


@router.patch("/{trip_id}/expenses/{expense_id}", response_model=ExpenseResponse)
async def update_expense(
    trip_id: str,
    expense_id: str,
    body: ExpenseUpdateRequest,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> ExpenseResponse:
    if not body.model_fields_set:
        raise ValidationError("No updates provided")
    expense = await TripService(session).update_expense(
        trip_id,
        expense_id,
        auth,
        total=body.total,
        tax=body.tax,
        tip=body.tip,
        shared_with_member_ids=body.shared_with_member_ids,
        allocations=_allocation_pairs(body.allocations),
        remainder_member_id=body.remainder_member_id,
    )
    return ExpenseResponse.model_validate(expense)


@router.delete("/{trip_id}/expenses/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_expense(
    trip_id: str,
    expense_id: str,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> Response:
    await TripService(session).delete_expense(trip_id, expense_id, auth)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{trip_id}/settlements",
    response_model=SettlementResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_settlement(
    trip_id: str,
    body: SettlementCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> SettlementResponse:
    settlement = await TripService(session).record_settlement(
        trip_id,
        auth,
        from_member_id=body.from_member_id,
        to_member_id=body.to_member_id,
        amount=body.amount,
        currency=body.currency,
        note=body.note,
    )
    return SettlementResponse.model_validate(settlement)


@router.patch("/{trip_id}/settlements/{settlement_id}", response_model=SettlementResponse)
async def confirm_settlement(
    trip_id: str,
    settlement_id: str,
    body: SettlementConfirmRequest,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> SettlementResponse:
    settlement = await TripService(session).confirm_settlement(
        trip_id, settlement_id, body.confirmed, auth
    )
    return SettlementResponse.model_validate(settlement)


@router.delete(
    "/{trip_id}/settlements/{settlement_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_settlement(
    trip_id: str,
    settlement_id: str,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> Response:
    await TripService(session).delete_settlement(trip_id, settlement_id, auth)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{trip_id}/receipts", response_model=ReceiptResponse, status_code=status.HTTP_201_CREATED
)
async def create_receipt(
    trip_id: str,
    body: ReceiptCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> ReceiptResponse:
    """Register a receipt before its file is uploaded to storage."""
    receipt = await ReceiptService(session).create_receipt(
        trip_id, body.file_name, body.content_type, auth
    )
    return ReceiptResponse.model_validate(receipt)


@router.post("/{trip_id}/receipts/{receipt_id}/result", response_model=ReceiptResponse)
async def record_receipt_result(
    trip_id: str,
    receipt_id: str,
    body: ReceiptResultRequest,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> ReceiptResponse:
    """Extractor callback with either the extracted fields or a failure reason."""
    service = ReceiptService(session)
    if body.extraction is not None:
        receipt = await service.record_extraction(trip_id, receipt_id, body.extraction, auth)
    elif body.failure_reason:
        receipt = await service.record_failure(trip_id, receipt_id, body.failure_reason, auth)
    else:
        raise ValidationError("Provide an extraction or a failure reason")
    logger.debug("trips.receipt_result: receipt_id=%s by=%s", receipt_id, auth.user_id)
    return ReceiptResponse.model_validate(receipt)


@router.get("/{trip_id}/receipts/{receipt_id}/draft", response_model=ExpenseDraftResponse)
async def get_expense_draft(
    trip_id: str,
    receipt_id: str,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> ExpenseDraftResponse:
    """Expense fields prefilled from a processed receipt."""
    draft = await ReceiptService(session).get_expense_draft(trip_id, receipt_id, auth)
    return ExpenseDraftResponse.model_validate(draft)


__all__ = ["router"]
