"""Trip service: members, expenses and settlements of a shared-expense group.

Every write validates against the trip's current records before anything is
persisted. Reads fetch the full record set and recompute balances and
settlement suggestions from it.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models import utc_now
from src.models.expense import Expense, ExpenseAllocation
from src.models.receipt import Receipt, ReceiptStatus
from src.models.settlement import Settlement
from src.models.trip import Trip, TripMember
from src.services import commit_or_conflict
from src.services.allocation_service import AllocationMode, AllocationResult, AllocationService
from src.services.auth_service import AuthContext
from src.services.balance_service import BalanceRow, BalanceService
from src.services.config import AppConfig, load_config
from src.services.errors import ForbiddenError, NotFoundError, ValidationError
from src.services.money import generate_id, round_cents, to_decimal
from src.services.settlement_service import SettlementSuggestion, suggest_settlements
from src.services.user_service import UserService

logger = logging.getLogger(__name__)

TRIP_UPDATE_FIELDS = ("name", "start_date", "end_date")


@dataclass
class TripDetails:
    """Every record hanging off one trip."""

    trip: Trip
    members: List[TripMember]
    expenses: List[Expense]
    receipts: List[Receipt]
    settlements: List[Settlement]

    def is_member(self, user_id: str) -> bool:
        return any(member.member_id == user_id for member in self.members)

    def is_owner(self, user_id: str) -> bool:
        return self.trip.owner_id == user_id

    def member_ids(self) -> List[str]:
        return [member.member_id for member in self.members]


@dataclass
class TripSummary:
    """Trip with derived balances, pending settlements and suggestions."""

    trip: Trip
    members: List[TripMember]
    expenses: List[Expense]
    receipts: List[Receipt]
    settlements: List[Settlement]
    balances: List[BalanceRow]
    pending_settlements: List[Settlement]
    suggestions: List[SettlementSuggestion] = field(default_factory=list)
    current_user_id: str = ""


def _ensure_member(details: TripDetails, member_id: str) -> TripMember:
    for member in details.members:
        if member.member_id == member_id:
            return member
    raise ValidationError(f"Member {member_id} not part of trip")


def _ensure_unique(member_ids: Sequence[str]) -> None:
    if len(member_ids) != len(set(member_ids)):
        raise ValidationError("Duplicate members in split")


def _absorb_residual(
    pairs: List[tuple], total, remainder_member_id: Optional[str] = None
) -> List[tuple]:
    """
    Move the cents between accepted allocations and the total onto one member.

    Allocations pass validation within a tolerance, but the stored shares must
    sum to the total exactly or balances stop adding up to zero. The residual
    goes to the remainder member when given, otherwise to the last allocation,
    and to the largest one if that share would turn negative.
    """
    residual = round_cents(round_cents(total) - sum((amount for _, amount in pairs), Decimal("0")))
    if residual == 0:
        return pairs

    ids = [member_id for member_id, _ in pairs]
    index = ids.index(remainder_member_id) if remainder_member_id in ids else len(pairs) - 1
    if pairs[index][1] + residual < 0:
        index = max(range(len(pairs)), key=lambda i: pairs[i][1])

    adjusted = list(pairs)
    member_id, amount = adjusted[index]
    adjusted[index] = (member_id, round_cents(amount + residual))
    logger.debug("Assigned allocation residual %s to %s", residual, member_id)
    return adjusted


class TripService:
    """Service for trip workflows."""

    def __init__(self, session: AsyncSession, config: Optional[AppConfig] = None):
        """Initialize with database session and optional configuration."""
        self.session = session
        self.config = config or load_config()
        self.users = UserService(session)
        self.allocator = AllocationService()
        self.balances = BalanceService()

    # ------------------------------------------------------------------
    # Loading and access checks
    # ------------------------------------------------------------------

    async def get_trip_details(self, trip_id: str) -> TripDetails:
        """
        Load a trip with members, expenses, receipts and settlements.

        Raises:
            NotFoundError: If the trip does not exist
        """
        trip = await self.session.get(Trip, trip_id)
        if trip is None:
            raise NotFoundError(f"Trip {trip_id} not found")

        expenses = await self.session.execute(
            select(Expense).where(Expense.trip_id == trip_id).order_by(Expense.created_at)
        )
        receipts = await self.session.execute(
            select(Receipt).where(Receipt.trip_id == trip_id).order_by(Receipt.created_at)
        )
        settlements = await self.session.execute(
            select(Settlement)
            .where(Settlement.trip_id == trip_id)
            .order_by(Settlement.created_at)
        )
        return TripDetails(
            trip=trip,
            members=list(trip.members),
            expenses=list(expenses.scalars().all()),
            receipts=list(receipts.scalars().all()),
            settlements=list(settlements.scalars().all()),
        )

    async def _require_member(
        self, trip_id: str, auth: AuthContext, message: str = "Not authorized"
    ) -> TripDetails:
        await self.users.ensure_user_profile(auth)
        details = await self.get_trip_details(trip_id)
        if not details.is_member(auth.user_id):
            raise ForbiddenError(message)
        return details

    async def _require_owner(self, trip_id: str, auth: AuthContext, message: str) -> TripDetails:
        await self.users.ensure_user_profile(auth)
        details = await self.get_trip_details(trip_id)
        if not details.is_owner(auth.user_id):
            raise ForbiddenError(message)
        return details

    async def _resolve_profiles(self, user_ids: Sequence[str]):
        profiles = await self.users.get_users_by_ids(user_ids)
        if len(profiles) != len(user_ids):
            found = {profile.id for profile in profiles}
            missing = [user_id for user_id in user_ids if user_id not in found]
            raise ValidationError(f"Some members do not exist: {', '.join(missing)}")
        return profiles

    # ------------------------------------------------------------------
    # Trips and members
    # ------------------------------------------------------------------

    async def list_trips(self, auth: AuthContext) -> List[Trip]:
        """Trips the caller belongs to, newest first."""
        await self.users.ensure_user_profile(auth)
        await self.session.commit()
        result = await self.session.execute(
            select(Trip)
            .join(TripMember, TripMember.trip_id == Trip.id)
            .where(TripMember.member_id == auth.user_id)
            .order_by(Trip.created_at.desc())
        )
        return list(result.scalars().all())

    async def create_trip(
        self,
        auth: AuthContext,
        name: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        currency: Optional[str] = None,
        member_ids: Sequence[str] = (),
    ) -> Trip:
        """
        Create a trip owned by the caller, optionally with extra members.

        Raises:
            ValidationError: If the name is blank or a member profile is missing
        """
        if not name or not name.strip():
            raise ValidationError("Trip name is required")

        owner = await self.users.ensure_user_profile(auth)
        requested = list(dict.fromkeys(m for m in member_ids if m != auth.user_id))
        extra_profiles = await self._resolve_profiles(requested)

        trip = Trip(
            id=generate_id("trip_"),
            owner_id=auth.user_id,
            name=name.strip(),
            start_date=start_date,
            end_date=end_date,
            currency=(currency or self.config.default_currency).upper(),
        )
        trip.members = [
            TripMember(
                id=generate_id("mem_"),
                member_id=profile.id,
                display_name=profile.resolved_name,
                email=profile.email,
                added_by=auth.user_id,
                position=position,
            )
            for position, profile in enumerate([owner, *extra_profiles])
        ]
        self.session.add(trip)
        await commit_or_conflict(self.session, "Trip already exists")

        logger.info(
            "Created trip %s owner=%s members=%d", trip.id, auth.user_id, len(trip.members)
        )
        return trip

    async def update_trip(self, trip_id: str, updates: Dict[str, Any], auth: AuthContext) -> Trip:
        """
        Update trip name and dates (owner only).

        ``updates`` holds only the fields the caller sent; a ``None`` date
        clears it.

        Raises:
            ValidationError: If nothing to update or the name is blank
            ForbiddenError: If the caller is not the owner
        """
        changes = {key: value for key, value in updates.items() if key in TRIP_UPDATE_FIELDS}
        if not changes:
            raise ValidationError("No updates provided")
        if "name" in changes and (not changes["name"] or not changes["name"].strip()):
            raise ValidationError("Trip name is required")

        details = await self._require_owner(trip_id, auth, "Only trip owners can edit details")
        trip = details.trip
        for key, value in changes.items():
            setattr(trip, key, value.strip() if key == "name" else value)
        trip.updated_at = utc_now()
        await self.session.commit()
        logger.info("Updated trip %s fields=%s", trip_id, sorted(changes))
        return trip

    async def get_trip_summary(self, trip_id: str, auth: AuthContext) -> TripSummary:
        """
        Trip records plus balances, pending settlements and payment suggestions.

        Raises:
            ForbiddenError: If the caller is not a member
        """
        details = await self._require_member(
            trip_id, auth, "You do not have access to this trip"
        )
        await self.session.commit()

        balances = self.balances.compute_balances(
            details.members, details.expenses, details.settlements
        )
        expenses = list(reversed(details.expenses))
        return TripSummary(
            trip=details.trip,
            members=details.members,
            expenses=expenses,
            receipts=details.receipts,
            settlements=details.settlements,
            balances=balances,
            pending_settlements=self.balances.pending_settlements(details.settlements),
            suggestions=suggest_settlements(balances),
            current_user_id=auth.user_id,
        )

    async def add_members(
        self, trip_id: str, member_ids: Sequence[str], auth: AuthContext
    ) -> List[TripMember]:
        """
        Add existing users to a trip (owner only).

        Raises:
            ValidationError: If every requested user is already a member, or a
                profile does not exist
        """
        if not member_ids:
            raise ValidationError("Select at least one member to add")

        details = await self._require_owner(trip_id, auth, "Only trip owners can add members")
        existing = set(details.member_ids())
        requested = [
            member_id
            for member_id in dict.fromkeys(member_ids)
            if member_id != auth.user_id and member_id not in existing
        ]
        if not requested:
            raise ValidationError("All selected members are already in the trip")

        profiles = await self._resolve_profiles(requested)
        next_position = max((m.position for m in details.members), default=-1) + 1
        new_members = [
            TripMember(
                id=generate_id("mem_"),
                trip_id=trip_id,
                member_id=profile.id,
                display_name=profile.resolved_name,
                email=profile.email,
                added_by=auth.user_id,
                position=next_position + offset,
            )
            for offset, profile in enumerate(profiles)
        ]
        details.trip.members.extend(new_members)
        await commit_or_conflict(self.session, "Member already part of trip")

        logger.info("Added %d members to trip %s", len(new_members), trip_id)
        return new_members

    async def remove_member(self, trip_id: str, member_id: str, auth: AuthContext) -> None:
        """
        Remove a member who has no expenses or settlements (owner only).

        Raises:
            ValidationError: If removing the owner, an unknown member, or a
                member referenced by financial records
        """
        details = await self._require_owner(
            trip_id, auth, "Only trip owners can remove members"
        )
        if member_id == details.trip.owner_id:
            raise ValidationError("Cannot remove the trip owner")

        member = next((m for m in details.members if m.member_id == member_id), None)
        if member is None:
            raise ValidationError("Member not found on this trip")

        in_expenses = any(
            expense.paid_by_member_id == member_id
            or member_id in (expense.shared_with_member_ids or [])
            or any(a.member_id == member_id for a in expense.allocations)
            for expense in details.expenses
        )
        if in_expenses:
            raise ValidationError("Cannot remove member with recorded expenses")

        in_settlements = any(
            s.from_member_id == member_id or s.to_member_id == member_id
            for s in details.settlements
        )
        if in_settlements:
            raise ValidationError("Cannot remove member with recorded settlements")

        details.trip.members.remove(member)
        await self.session.delete(member)
        await self.session.commit()
        logger.info("Removed member %s from trip %s", member_id, trip_id)

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    async def preview_allocations(
        self,
        trip_id: str,
        auth: AuthContext,
        total,
        participant_ids: Sequence[str],
        mode: AllocationMode = AllocationMode.EVEN,
        remainder_target_id: Optional[str] = None,
        custom_amounts: Optional[Dict[str, str]] = None,
        tax=None,
        tip=None,
        split_extras_evenly: bool = False,
    ) -> AllocationResult:
        """Compute shares for a draft expense without saving anything."""
        details = await self._require_member(trip_id, auth)
        await self.session.commit()
        for member_id in participant_ids:
            _ensure_member(details, member_id)
        return self.allocator.compute_allocations(
            total,
            participant_ids,
            mode=mode,
            remainder_target_id=remainder_target_id,
            custom_amounts=custom_amounts,
            tax=tax,
            tip=tip,
            split_extras_evenly=split_extras_evenly,
        )

    def _build_allocations(
        self,
        details: TripDetails,
        total: Decimal,
        shared_with: Sequence[str],
        allocations: Optional[Sequence[tuple]],
        split_evenly: bool,
        remainder_member_id: Optional[str],
    ) -> List[ExpenseAllocation]:
        if split_evenly or not allocations:
            shares = self.allocator.distribute_evenly(total, shared_with, remainder_member_id)
            pairs = list(shares.items())
        else:
            pairs = [(member_id, round_cents(amount)) for member_id, amount in allocations]
            _ensure_unique([member_id for member_id, _ in pairs])

        self.allocator.validate_allocations(
            pairs, total, details.member_ids(), self.config.allocation_tolerance
        )
        pairs = _absorb_residual(pairs, total, remainder_member_id)
        return [
            ExpenseAllocation(member_id=member_id, amount=amount, position=position)
            for position, (member_id, amount) in enumerate(pairs)
        ]

    async def create_expense(
        self,
        trip_id: str,
        auth: AuthContext,
        description: str,
        total,
        paid_by_member_id: str,
        shared_with_member_ids: Sequence[str],
        currency: Optional[str] = None,
        vendor: Optional[str] = None,
        category: Optional[str] = None,
        tax=None,
        tip=None,
        allocations: Optional[Sequence[tuple]] = None,
        split_evenly: bool = False,
        remainder_member_id: Optional[str] = None,
        receipt_id: Optional[str] = None,
    ) -> Expense:
        """
        Record an expense paid by one member and shared with others.

        Without explicit allocations (or with ``split_evenly``) the total is
        split evenly in cents; leftover cents go to ``remainder_member_id`` when
        it is a participant, otherwise one cent each in list order.

        Raises:
            ValidationError: On non-positive totals, unknown members or receipt,
                or allocations that do not add up to the total
            ForbiddenError: If the caller is not a trip member
        """
        total = round_cents(total)
        if total <= 0:
            raise ValidationError("Expense total must be positive")
        for extra in (tax, tip):
            if extra is not None and to_decimal(extra) < 0:
                raise ValidationError("Tax and tip cannot be negative")
        if not description or not description.strip():
            raise ValidationError("Description is required")
        shared_with = list(shared_with_member_ids)
        if not shared_with:
            raise ValidationError("At least one participant is required")
        _ensure_unique(shared_with)

        details = await self._require_member(trip_id, auth, "You are not part of this trip")
        _ensure_member(details, paid_by_member_id)
        for member_id in shared_with:
            _ensure_member(details, member_id)

        if receipt_id and not any(r.id == receipt_id for r in details.receipts):
            raise ValidationError("Receipt not found on this trip")

        expense = Expense(
            id=generate_id("exp_"),
            trip_id=trip_id,
            description=description.strip(),
            vendor=vendor,
            category=category,
            total=total,
            currency=(currency or details.trip.currency).upper(),
            tax=round_cents(tax) if tax is not None else None,
            tip=round_cents(tip) if tip is not None else None,
            paid_by_member_id=paid_by_member_id,
            shared_with_member_ids=shared_with,
            receipt_id=receipt_id,
        )
        expense.allocations = self._build_allocations(
            details, total, shared_with, allocations, split_evenly, remainder_member_id
        )
        self.session.add(expense)
        await commit_or_conflict(self.session, "Expense already exists")

        logger.info(
            "Created expense %s trip=%s total=%s payer=%s shares=%d",
            expense.id,
            trip_id,
            total,
            paid_by_member_id,
            len(expense.allocations),
        )
        return expense

    async def update_expense(
        self,
        trip_id: str,
        expense_id: str,
        auth: AuthContext,
        total=None,
        tax=None,
        tip=None,
        shared_with_member_ids: Optional[Sequence[str]] = None,
        allocations: Optional[Sequence[tuple]] = None,
        remainder_member_id: Optional[str] = None,
    ) -> Expense:
        """
        Change an expense's amounts or participants.

        Explicit allocations win. Otherwise a new total or new participant list
        re-splits the expense evenly. The result is validated in full.

        Raises:
            NotFoundError: If the expense does not exist on this trip
            ValidationError: On invalid amounts or members
        """
        details = await self._require_member(trip_id, auth)
        expense = next((e for e in details.expenses if e.id == expense_id), None)
        if expense is None:
            raise NotFoundError("Expense not found")

        new_total = round_cents(total) if total is not None else to_decimal(expense.total)
        if new_total <= 0:
            raise ValidationError("Expense total must be positive")
        for extra in (tax, tip):
            if extra is not None and to_decimal(extra) < 0:
                raise ValidationError("Tax and tip cannot be negative")

        shared_with = list(expense.shared_with_member_ids or [])
        if shared_with_member_ids is not None:
            shared_with = list(shared_with_member_ids)
            if not shared_with:
                raise ValidationError("At least one participant is required")
            _ensure_unique(shared_with)
            for member_id in shared_with:
                _ensure_member(details, member_id)

        if allocations is not None:
            new_allocations = self._build_allocations(
                details, new_total, shared_with, allocations, False, None
            )
        elif total is not None or shared_with_member_ids is not None:
            new_allocations = self._build_allocations(
                details, new_total, shared_with, None, True, remainder_member_id
            )
        else:
            new_allocations = None

        expense.total = new_total
        expense.shared_with_member_ids = shared_with
        if tax is not None:
            expense.tax = round_cents(tax)
        if tip is not None:
            expense.tip = round_cents(tip)
        if new_allocations is not None:
            expense.allocations = new_allocations
        expense.updated_at = utc_now()
        await self.session.commit()

        logger.info("Updated expense %s trip=%s total=%s", expense_id, trip_id, new_total)
        return expense

    async def delete_expense(self, trip_id: str, expense_id: str, auth: AuthContext) -> None:
        """
        Delete an expense (payer or trip owner only).

        Raises:
            NotFoundError: If the expense does not exist on this trip
            ForbiddenError: If the caller may not delete it
        """
        details = await self._require_member(trip_id, auth)
        expense = next((e for e in details.expenses if e.id == expense_id), None)
        if expense is None:
            raise NotFoundError("Expense not found")
        if expense.paid_by_member_id != auth.user_id and not details.is_owner(auth.user_id):
            raise ForbiddenError("Not authorized to delete this expense")

        await self.session.delete(expense)
        await self.session.commit()
        logger.info("Deleted expense %s trip=%s", expense_id, trip_id)

    # ------------------------------------------------------------------
    # Settlements
    # ------------------------------------------------------------------

    async def record_settlement(
        self,
        trip_id: str,
        auth: AuthContext,
        from_member_id: str,
        to_member_id: str,
        amount,
        currency: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Settlement:
        """
        Record a pending payment between two members.

        Raises:
            ValidationError: If amount is not positive, members are unknown or
                the same member is on both sides
        """
        amount = round_cents(amount)
        if amount <= 0:
            raise ValidationError("Settlement amount must be positive")
        if from_member_id == to_member_id:
            raise ValidationError("Settlement participants must be different members")

        details = await self._require_member(trip_id, auth)
        _ensure_member(details, from_member_id)
        _ensure_member(details, to_member_id)

        settlement = Settlement(
            id=generate_id("set_"),
            trip_id=trip_id,
            from_member_id=from_member_id,
            to_member_id=to_member_id,
            amount=amount,
            currency=(currency or details.trip.currency).upper(),
            note=note,
            created_by=auth.user_id,
        )
        self.session.add(settlement)
        await commit_or_conflict(self.session, "Settlement already exists")

        logger.info(
            "Recorded settlement %s trip=%s %s->%s amount=%s",
            settlement.id,
            trip_id,
            from_member_id,
            to_member_id,
            amount,
        )
        return settlement

    def _find_settlement(self, details: TripDetails, settlement_id: str) -> Settlement:
        settlement = next((s for s in details.settlements if s.id == settlement_id), None)
        if settlement is None:
            raise NotFoundError("Settlement not found")
        return settlement

    async def confirm_settlement(
        self, trip_id: str, settlement_id: str, confirmed: bool, auth: AuthContext
    ) -> Settlement:
        """
        Confirm (or revert to pending) a settlement.

        Only the two parties or the trip owner may change confirmation.
        Confirming an already confirmed settlement keeps its original timestamp.
        """
        await self.users.ensure_user_profile(auth)
        details = await self.get_trip_details(trip_id)
        settlement = self._find_settlement(details, settlement_id)
        if auth.user_id not in (settlement.from_member_id, settlement.to_member_id) and (
            not details.is_owner(auth.user_id)
        ):
            raise ForbiddenError("Not authorized to confirm this settlement")

        if confirmed:
            if settlement.confirmed_at is None:
                settlement.confirmed_at = utc_now()
        else:
            settlement.confirmed_at = None
        await self.session.commit()

        logger.info(
            "Settlement %s trip=%s confirmed=%s", settlement_id, trip_id, settlement.is_confirmed
        )
        return settlement

    async def delete_settlement(self, trip_id: str, settlement_id: str, auth: AuthContext) -> None:
        """Delete a settlement (either party or the trip owner)."""
        await self.users.ensure_user_profile(auth)
        details = await self.get_trip_details(trip_id)
        settlement = self._find_settlement(details, settlement_id)
        if auth.user_id not in (settlement.from_member_id, settlement.to_member_id) and (
            not details.is_owner(auth.user_id)
        ):
            raise ForbiddenError("Not authorized to delete this settlement")

        await self.session.delete(settlement)
        await self.session.commit()
        logger.info("Deleted settlement %s trip=%s", settlement_id, trip_id)


__all__ = ["TripDetails", "TripService", "TripSummary"]
