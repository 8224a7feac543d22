"""Settlement suggestions: who should pay whom to clear a trip.

Greedy matching of creditors and debtors in the order the balances are given.
The result always zeroes every balance (within a cent) but is not guaranteed
to use the fewest possible payments.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, NamedTuple

from src.services.money import round_cents, to_decimal

# Balances within a cent of zero are considered settled
SETTLED_THRESHOLD = Decimal("0.01")


class SettlementSuggestion(NamedTuple):
    """A proposed payment from a debtor to a creditor."""

    from_member_id: str
    to_member_id: str
    amount: Decimal


@dataclass
class _Position:
    member_id: str
    remaining: Decimal


def suggest_settlements(balances: Iterable) -> List[SettlementSuggestion]:
    """Propose payments that bring every balance to zero.

    Members with balance > 0.01 are creditors, < -0.01 are debtors; both lists
    keep the caller's order. The earliest open creditor and debtor settle
    min(remaining) until either list runs out. Produces at most
    ``len(creditors) + len(debtors) - 1`` suggestions.

    Args:
        balances: Rows with ``member_id`` and ``balance``

    Returns:
        Suggestions in the order they were matched
    """
    creditors: List[_Position] = []
    debtors: List[_Position] = []
    for row in balances:
        balance = to_decimal(row.balance)
        if balance > SETTLED_THRESHOLD:
            creditors.append(_Position(row.member_id, balance))
        elif balance < -SETTLED_THRESHOLD:
            debtors.append(_Position(row.member_id, -balance))

    suggestions: List[SettlementSuggestion] = []
    creditor_index = 0
    debtor_index = 0
    while creditor_index < len(creditors) and debtor_index < len(debtors):
        creditor = creditors[creditor_index]
        debtor = debtors[debtor_index]
        amount = min(creditor.remaining, debtor.remaining)

        suggestions.append(
            SettlementSuggestion(
                from_member_id=debtor.member_id,
                to_member_id=creditor.member_id,
                amount=round_cents(amount),
            )
        )

        creditor.remaining -= amount
        debtor.remaining -= amount
        if creditor.remaining <= SETTLED_THRESHOLD:
            creditor_index += 1
        if debtor.remaining <= SETTLED_THRESHOLD:
            debtor_index += 1

    return suggestions


__all__ = ["SettlementSuggestion", "suggest_settlements"]
