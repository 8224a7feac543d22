"""Allocation service for splitting an expense total across trip members.

Supports allocation modes:
- EVEN: Equal shares in integer cents, remainder assigned deterministically
- CUSTOM: Caller-supplied base amounts, optionally plus an even share of tax + tip
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from src.services.errors import ValidationError
from src.services.money import (
    ZERO,
    from_cents,
    parse_amount,
    round_cents,
    to_cents,
    to_decimal,
)

# Totals smaller than this are treated as "nothing to split"
MIN_SPLITTABLE = Decimal("0.0001")
# Calculator output is considered balanced within one cent
BALANCE_TOLERANCE = Decimal("0.01")


class AllocationMode(str, Enum):
    """How an expense total is split."""

    EVEN = "EVEN"
    CUSTOM = "CUSTOM"


@dataclass
class AllocationDetail:
    """Computed share for one member."""

    member_id: str
    base_amount: Decimal
    extras_share: Decimal
    amount: Decimal


@dataclass
class CustomAllocationResult:
    """Result of a custom split before it is compared with the target."""

    per_member: List[AllocationDetail]
    total: Decimal
    base_total: Decimal
    extras: Dict[str, Decimal] = field(default_factory=dict)


@dataclass
class AllocationResult:
    """Per-member shares, their sum and the gap to the target total."""

    per_member: List[AllocationDetail]
    total: Decimal
    delta: Decimal

    @property
    def is_balanced(self) -> bool:
        """True when the shares add up to the target within one cent."""
        return abs(self.delta) <= BALANCE_TOLERANCE

    def as_mapping(self) -> Dict[str, Decimal]:
        return {detail.member_id: detail.amount for detail in self.per_member}


class AllocationService:
    """Expense allocation engine with even and custom modes."""

    def distribute_evenly(
        self,
        total,
        member_ids: Sequence[str],
        remainder_target_id: Optional[str] = None,
    ) -> Dict[str, Decimal]:
        """Split ``total`` into equal integer-cent shares.

        Ensures: sum(result) == round_cents(total) exactly.

        Algorithm:
        1. Convert total to integer cents (sign kept aside)
        2. base = floor(|cents| / n), remainder = |cents| - base * n
        3. If remainder_target_id is a participant it takes the whole remainder,
           otherwise participants take one extra cent each in list order

        Args:
            total: Amount to split (any numeric, converted to Decimal)
            member_ids: Ordered participant ids
            remainder_target_id: Optional member that absorbs the leftover cents

        Returns:
            Dict mapping member_id to share, in participant order
        """
        amount = to_decimal(total)
        if not member_ids or abs(amount) < MIN_SPLITTABLE:
            return {}

        total_cents = to_cents(amount)
        sign = -1 if total_cents < 0 else 1
        absolute_cents = abs(total_cents)
        count = len(member_ids)
        base_share = absolute_cents // count
        remainder = absolute_cents - base_share * count
        has_target = remainder_target_id is not None and remainder_target_id in member_ids

        shares: Dict[str, Decimal] = {}
        for member_id in member_ids:
            cents = base_share
            if remainder > 0:
                if has_target and member_id == remainder_target_id:
                    cents += remainder
                    remainder = 0
                elif not has_target:
                    cents += 1
                    remainder -= 1
            shares[member_id] = from_cents(cents * sign)
        return shares

    def compute_custom_allocations(
        self,
        member_ids: Sequence[str],
        base_inputs: Mapping[str, str],
        extras_total=ZERO,
        split_extras_evenly: bool = False,
    ) -> CustomAllocationResult:
        """Build shares from typed base amounts plus an optional even surcharge.

        Base amounts are decimal strings as entered by the user; unparsable or
        missing values count as zero. When ``split_extras_evenly`` is set, the
        tax + tip total is spread with the even-split rule and added on top.
        """
        extras = (
            self.distribute_evenly(extras_total, member_ids) if split_extras_evenly else {}
        )

        total_cents = 0
        base_total_cents = 0
        per_member: List[AllocationDetail] = []
        for member_id in member_ids:
            base_amount = parse_amount(base_inputs.get(member_id, "0"))
            extras_share = extras.get(member_id, ZERO)
            amount = round_cents(base_amount + extras_share)
            base_total_cents += to_cents(base_amount)
            total_cents += to_cents(amount)
            per_member.append(
                AllocationDetail(
                    member_id=member_id,
                    base_amount=base_amount,
                    extras_share=extras_share,
                    amount=amount,
                )
            )

        return CustomAllocationResult(
            per_member=per_member,
            total=from_cents(total_cents),
            base_total=from_cents(base_total_cents),
            extras=extras,
        )

    def compute_allocations(
        self,
        total,
        participant_ids: Sequence[str],
        mode: AllocationMode = AllocationMode.EVEN,
        remainder_target_id: Optional[str] = None,
        custom_amounts: Optional[Mapping[str, str]] = None,
        tax=None,
        tip=None,
        split_extras_evenly: bool = False,
    ) -> AllocationResult:
        """Compute per-member shares and the delta against ``total``.

        Callers should block submission when ``result.is_balanced`` is False.

        Raises:
            ValidationError: If the mode is unknown
        """
        try:
            mode = AllocationMode(mode)
        except ValueError as e:
            raise ValidationError(f"Unknown allocation mode: {mode}") from e

        target = round_cents(total)
        if not participant_ids or to_decimal(total) < MIN_SPLITTABLE:
            return AllocationResult(per_member=[], total=ZERO, delta=ZERO - target)

        if mode == AllocationMode.EVEN:
            shares = self.distribute_evenly(target, participant_ids, remainder_target_id)
            per_member = [
                AllocationDetail(
                    member_id=member_id,
                    base_amount=amount,
                    extras_share=ZERO,
                    amount=amount,
                )
                for member_id, amount in shares.items()
            ]
            allocated = sum((detail.amount for detail in per_member), ZERO)
        elif mode == AllocationMode.CUSTOM:
            extras_total = round_cents(to_decimal(tax) + to_decimal(tip))
            custom = self.compute_custom_allocations(
                participant_ids,
                custom_amounts or {},
                extras_total,
                split_extras_evenly,
            )
            per_member = custom.per_member
            allocated = custom.total

        return AllocationResult(
            per_member=per_member,
            total=allocated,
            delta=round_cents(allocated - target),
        )

    def validate_allocations(
        self,
        allocations: Iterable[tuple[str, Decimal]],
        total,
        member_ids: Iterable[str],
        tolerance,
    ) -> Decimal:
        """Check stored allocations before an expense is written.

        Args:
            allocations: (member_id, amount) pairs
            total: Expense total the allocations must add up to
            member_ids: Ids of every member of the trip
            tolerance: Allowed absolute gap between sum and total

        Returns:
            The cent-rounded allocated sum

        Raises:
            ValidationError: If empty, referencing non-members, negative, or
                not adding up to the total within tolerance
        """
        pairs = list(allocations)
        if not pairs:
            raise ValidationError("At least one participant is required")

        known = set(member_ids)
        allocated = ZERO
        for member_id, amount in pairs:
            if member_id not in known:
                raise ValidationError(f"Member {member_id} not part of trip")
            if to_decimal(amount) < 0:
                raise ValidationError("Allocation amounts cannot be negative")
            allocated = round_cents(allocated + to_decimal(amount))

        expected = round_cents(total)
        if abs(allocated - expected) > to_decimal(tolerance):
            raise ValidationError(
                f"Allocated total {allocated} does not match expense total {expected}"
            )
        return allocated


__all__ = [
    "AllocationMode",
    "AllocationDetail",
    "AllocationResult",
    "AllocationService",
    "CustomAllocationResult",
]
