"""Balance calculation service for trip members.

Balance formula per member:
    Paid(expenses) - Allocated(expenses) + Sent(confirmed settlements) - Received(confirmed settlements)

Positive balance = the member is owed money, negative = the member owes.
Balances are never persisted: they are folded from the full set of expenses
and settlements on every read, so they cannot drift from the records.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, NamedTuple, Sequence

from src.services.money import ZERO, round_cents, to_decimal

logger = logging.getLogger(__name__)


class BalanceRow(NamedTuple):
    """Net position of one trip member."""

    member_id: str
    display_name: str
    balance: Decimal


class BalanceService:
    """Calculate per-member balances from expenses and confirmed settlements."""

    def compute_balances(
        self,
        members: Sequence,
        expenses: Iterable,
        settlements: Iterable,
    ) -> List[BalanceRow]:
        """Fold expenses and confirmed settlements into one balance per member.

        Every addition is rounded to cents immediately so that drift cannot
        accumulate over many records. Pending settlements are skipped.

        Args:
            members: Trip members (``member_id``, ``display_name``), in display order
            expenses: Expenses with ``paid_by_member_id``, ``total`` and ``allocations``
            settlements: Settlements with ``from_member_id``, ``to_member_id``,
                ``amount`` and ``confirmed_at``

        Returns:
            BalanceRow per member, in the order members were given
        """
        balances: Dict[str, Decimal] = {member.member_id: ZERO for member in members}
        unknown: set[str] = set()

        def apply(member_id: str, delta: Decimal) -> None:
            if member_id not in balances:
                unknown.add(member_id)
            balances[member_id] = round_cents(balances.get(member_id, ZERO) + delta)

        for expense in expenses:
            apply(expense.paid_by_member_id, to_decimal(expense.total))
            for allocation in expense.allocations:
                apply(allocation.member_id, -to_decimal(allocation.amount))

        for settlement in settlements:
            if settlement.confirmed_at is None:
                continue
            amount = to_decimal(settlement.amount)
            apply(settlement.from_member_id, amount)
            apply(settlement.to_member_id, -amount)

        if unknown:
            logger.warning(
                "Balance computation referenced non-members: %s", ", ".join(sorted(unknown))
            )

        return [
            BalanceRow(
                member_id=member.member_id,
                display_name=member.display_name,
                balance=round_cents(balances[member.member_id]),
            )
            for member in members
        ]

    @staticmethod
    def pending_settlements(settlements: Iterable) -> list:
        """Settlements that have not been confirmed yet."""
        return [settlement for settlement in settlements if settlement.confirmed_at is None]


__all__ = ["BalanceRow", "BalanceService"]
