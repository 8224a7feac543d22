"""Group ledger API endpoints."""

import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.schemas import (
    BucketSummaryResponse,
    GroupSummaryResponse,
    LedgerAccessCreateRequest,
    LedgerAccessOverviewResponse,
    LedgerAccessResponse,
    LedgerEntriesResponse,
    LedgerEntryCreateRequest,
    LedgerEntryGroupRequest,
    LedgerEntryResponse,
    LedgerGroupCreateRequest,
    LedgerGroupResponse,
    LedgerGroupUpdateRequest,
    LedgerOverviewResponse,
    LedgerTotalsResponse,
    LedgerTransferCreateRequest,
    LedgerTransferResponse,
)
from src.services import get_async_session
from src.services.auth_service import AuthContext, get_auth_context
from src.services.group_ledger_service import GroupLedgerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ledger", tags=["ledger"])


@router.get("/access", response_model=LedgerAccessOverviewResponse)
async def get_access(
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> LedgerAccessOverviewResponse:
    """Whether the caller may use the ledger; the member list when they may."""
    overview = await GroupLedgerService(session).get_access_overview(auth)
    return LedgerAccessOverviewResponse.model_validate(overview)


@router.post(
    "/access", response_model=LedgerAccessResponse, status_code=status.HTTP_201_CREATED
)
async def add_access(
    body: LedgerAccessCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> LedgerAccessResponse:
    record = await GroupLedgerService(session).add_access(
        auth,
        user_id=body.user_id,
        email=body.email,
        display_name=body.display_name,
        is_admin=body.is_admin,
    )
    return LedgerAccessResponse.model_validate(record)


@router.delete("/access/{access_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_access(
    access_id: str,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> Response:
    await GroupLedgerService(session).remove_access(access_id, auth)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/groups", response_model=list[LedgerGroupResponse])
async def list_groups(
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> list[LedgerGroupResponse]:
    groups = await GroupLedgerService(session).list_groups(auth)
    return [LedgerGroupResponse.model_validate(group) for group in groups]


@router.post(
    "/groups", response_model=LedgerGroupResponse, status_code=status.HTTP_201_CREATED
)
async def create_group(
    body: LedgerGroupCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> LedgerGroupResponse:
    group = await GroupLedgerService(session).create_group(
        body.name, auth, group_id=body.group_id
    )
    return LedgerGroupResponse.model_validate(group)


@router.patch("/groups/{group_id}", response_model=LedgerGroupResponse)
async def update_group(
    group_id: str,
    body: LedgerGroupUpdateRequest,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> LedgerGroupResponse:
    group = await GroupLedgerService(session).set_group_active(group_id, body.is_active, auth)
    return LedgerGroupResponse.model_validate(group)


@router.get("/entries", response_model=LedgerEntriesResponse)
async def get_entries(
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> LedgerEntriesResponse:
    """All entries, groups and transfers with computed totals and summaries."""
    view = await GroupLedgerService(session).get_entries(auth)
    return LedgerEntriesResponse(
        entries=[LedgerEntryResponse.model_validate(e) for e in view.entries],
        totals=LedgerTotalsResponse.model_validate(view.totals),
        groups=[LedgerGroupResponse.model_validate(g) for g in view.groups],
        group_summaries=[GroupSummaryResponse.model_validate(s) for s in view.group_summaries],
        unallocated=BucketSummaryResponse.model_validate(view.unallocated),
        transfers=[LedgerTransferResponse.model_validate(t) for t in view.transfers],
    )


@router.get("/overview", response_model=LedgerOverviewResponse)
async def get_overview(
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> LedgerOverviewResponse:
    overview = await GroupLedgerService(session).get_overview(auth)
    return LedgerOverviewResponse.model_validate(overview)


@router.post(
    "/entries", response_model=LedgerEntryResponse, status_code=status.HTTP_201_CREATED
)
async def create_entry(
    body: LedgerEntryCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> LedgerEntryResponse:
    entry = await GroupLedgerService(session).create_entry(
        auth,
        entry_type=body.type,
        amount=body.amount,
        currency=body.currency,
        description=body.description,
        source=body.source,
        category=body.category,
        notes=body.notes,
        member_name=body.member_name,
        group_id=body.group_id,
    )
    return LedgerEntryResponse.model_validate(entry)


@router.patch("/entries/{entry_id}", response_model=LedgerEntryResponse)
async def update_entry_group(
    entry_id: str,
    body: LedgerEntryGroupRequest,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> LedgerEntryResponse:
    """Reassign an entry to a group, or to the unallocated pool with ``null``."""
    entry = await GroupLedgerService(session).update_entry_group(entry_id, body.group_id, auth)
    return LedgerEntryResponse.model_validate(entry)


@router.delete("/entries/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_entry(
    entry_id: str,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> Response:
    await GroupLedgerService(session).delete_entry(entry_id, auth)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/transfers", response_model=LedgerTransferResponse, status_code=status.HTTP_201_CREATED
)
async def create_transfer(
    body: LedgerTransferCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> LedgerTransferResponse:
    transfer = await GroupLedgerService(session).create_transfer(
        auth,
        amount=body.amount,
        from_group_id=body.from_group_id,
        to_group_id=body.to_group_id,
        currency=body.currency,
        note=body.note,
    )
    return LedgerTransferResponse.model_validate(transfer)


@router.delete("/transfers/{transfer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transfer(
    transfer_id: str,
    auth: AuthContext = Depends(get_auth_context),
    session: AsyncSession = Depends(get_async_session),
) -> Response:
    await GroupLedgerService(session).delete_transfer(transfer_id, auth)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["router"]
