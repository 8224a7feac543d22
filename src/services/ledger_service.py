"""Group ledger aggregation: totals, per-group summaries and the unallocated pool.

Bucket formula:
    net = donations + income + reimbursements + transfers_in - expenses - transfers_out

Every transfer leaves exactly one bucket and enters exactly one other, so the
sum of all bucket nets always equals the ledger-wide net computed from entries
alone. Aggregation is a pure function of the records passed in.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from src.models.ledger import LedgerEntryType
from src.services.money import ZERO, round_cents, to_decimal

_TYPE_FIELDS = {
    LedgerEntryType.DONATION: "donations",
    LedgerEntryType.INCOME: "income",
    LedgerEntryType.EXPENSE: "expenses",
    LedgerEntryType.REIMBURSEMENT: "reimbursements",
}


@dataclass
class BucketSummary:
    """Flows attributed to one group or to the unallocated pool."""

    donations: Decimal = ZERO
    income: Decimal = ZERO
    expenses: Decimal = ZERO
    reimbursements: Decimal = ZERO
    transfers_in: Decimal = ZERO
    transfers_out: Decimal = ZERO
    net: Decimal = ZERO

    def add_entry(self, entry_type: LedgerEntryType, amount: Decimal) -> None:
        name = _TYPE_FIELDS[entry_type]
        setattr(self, name, getattr(self, name) + amount)

    def compute_net(self) -> None:
        self.net = round_cents(
            self.donations
            + self.income
            + self.reimbursements
            + self.transfers_in
            - self.expenses
            - self.transfers_out
        )


@dataclass
class GroupSummary(BucketSummary):
    """Bucket for a named group."""

    group_id: str = ""
    name: str = ""


@dataclass
class LedgerTotals:
    """Ledger-wide sums by entry type. Transfers do not appear here."""

    donations: Decimal = ZERO
    income: Decimal = ZERO
    expenses: Decimal = ZERO
    reimbursements: Decimal = ZERO
    net: Decimal = ZERO


@dataclass
class LedgerAggregate:
    totals: LedgerTotals
    group_summaries: List[GroupSummary] = field(default_factory=list)
    unallocated: BucketSummary = field(default_factory=BucketSummary)

    @property
    def buckets_net(self) -> Decimal:
        """Sum of every bucket's net, groups plus the pool."""
        return round_cents(
            sum((summary.net for summary in self.group_summaries), ZERO) + self.unallocated.net
        )

    def group(self, group_id: str) -> Optional[GroupSummary]:
        for summary in self.group_summaries:
            if summary.group_id == group_id:
                return summary
        return None


def aggregate_ledger(
    entries: Iterable,
    groups: Iterable = (),
    transfers: Iterable = (),
) -> LedgerAggregate:
    """Aggregate entries and transfers into totals and per-bucket summaries.

    Known groups get a bucket up front (so idle groups still report zeros);
    group ids that only appear on entries or transfers get one on first
    reference. Entries and transfers without a group id land in the pool.

    Args:
        entries: Records with ``entry_type``, ``amount``, ``group_id``, ``group_name``
        groups: Records with ``group_id`` and ``name``
        transfers: Records with ``amount`` and optional ``from_group_id``/``to_group_id``

    Returns:
        LedgerAggregate with rounded sums
    """
    totals = LedgerTotals()
    unallocated = BucketSummary()
    buckets: Dict[str, GroupSummary] = {}

    for group in groups:
        buckets.setdefault(group.group_id, GroupSummary(group_id=group.group_id, name=group.name))

    def bucket_for(group_id: Optional[str], group_name: Optional[str] = None) -> BucketSummary:
        if not group_id:
            return unallocated
        if group_id not in buckets:
            buckets[group_id] = GroupSummary(group_id=group_id, name=group_name or group_id)
        return buckets[group_id]

    for entry in entries:
        entry_type = LedgerEntryType(entry.entry_type)
        amount = to_decimal(entry.amount)
        name = _TYPE_FIELDS[entry_type]
        setattr(totals, name, getattr(totals, name) + amount)
        bucket_for(entry.group_id, entry.group_name).add_entry(entry_type, amount)

    for transfer in transfers:
        amount = to_decimal(transfer.amount)
        bucket_for(transfer.from_group_id, transfer.from_group_name).transfers_out += amount
        bucket_for(transfer.to_group_id, transfer.to_group_name).transfers_in += amount

    totals.net = round_cents(
        totals.donations + totals.income + totals.reimbursements - totals.expenses
    )
    unallocated.compute_net()
    for summary in buckets.values():
        summary.compute_net()

    return LedgerAggregate(
        totals=totals,
        group_summaries=list(buckets.values()),
        unallocated=unallocated,
    )


__all__ = [
    "BucketSummary",
    "GroupSummary",
    "LedgerAggregate",
    "LedgerTotals",
    "aggregate_ledger",
]
