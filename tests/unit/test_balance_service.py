"""Unit tests for balance service."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from src.services.allocation_service import AllocationService
from src.services.balance_service import BalanceService

CONFIRMED_AT = datetime(2025, 6, 1, tzinfo=timezone.utc)


def member(member_id, name=None):
    return SimpleNamespace(member_id=member_id, display_name=name or member_id.title())


def expense(payer, total, shares):
    return SimpleNamespace(
        paid_by_member_id=payer,
        total=Decimal(total),
        allocations=[
            SimpleNamespace(member_id=member_id, amount=Decimal(amount))
            for member_id, amount in shares.items()
        ],
    )


def settlement(from_id, to_id, amount, confirmed=True):
    return SimpleNamespace(
        from_member_id=from_id,
        to_member_id=to_id,
        amount=Decimal(amount),
        confirmed_at=CONFIRMED_AT if confirmed else None,
    )


class TestComputeBalances:
    """Balances from expenses and confirmed settlements."""

    @pytest.fixture
    def service(self):
        return BalanceService()

    @pytest.fixture
    def members(self):
        return [member("alice"), member("bob"), member("carol"), member("dave")]

    def test_payer_outside_split(self, service, members):
        """Alice pays 100.00 split evenly between the other three."""
        shares = AllocationService().distribute_evenly(
            Decimal("100.00"), ["bob", "carol", "dave"]
        )
        rows = service.compute_balances(members, [expense("alice", "100.00", shares)], [])

        balances = {row.member_id: row.balance for row in rows}
        assert balances == {
            "alice": Decimal("100.00"),
            "bob": Decimal("-33.34"),
            "carol": Decimal("-33.33"),
            "dave": Decimal("-33.33"),
        }
        assert sum(balances.values()) == Decimal("0.00")

    def test_payer_inside_split(self, service, members):
        rows = service.compute_balances(
            members[:2],
            [expense("alice", "50.00", {"alice": "25.00", "bob": "25.00"})],
            [],
        )

        assert [row.balance for row in rows] == [Decimal("25.00"), Decimal("-25.00")]

    def test_confirmed_settlement_moves_balances(self, service, members):
        rows = service.compute_balances(
            members[:2],
            [expense("alice", "50.00", {"alice": "25.00", "bob": "25.00"})],
            [settlement("bob", "alice", "25.00")],
        )

        assert all(row.balance == Decimal("0.00") for row in rows)

    def test_pending_settlement_ignored(self, service, members):
        rows = service.compute_balances(
            members[:2],
            [expense("alice", "50.00", {"alice": "25.00", "bob": "25.00"})],
            [settlement("bob", "alice", "25.00", confirmed=False)],
        )

        assert [row.balance for row in rows] == [Decimal("25.00"), Decimal("-25.00")]

    def test_rows_follow_member_order_with_names(self, service, members):
        rows = service.compute_balances(members, [], [])

        assert [row.member_id for row in rows] == ["alice", "bob", "carol", "dave"]
        assert rows[0].display_name == "Alice"
        assert all(row.balance == Decimal("0.00") for row in rows)

    def test_conservation_over_many_records(self, service, members):
        ids = [m.member_id for m in members]
        allocator = AllocationService()
        expenses = [
            expense(ids[i % 4], total, allocator.distribute_evenly(Decimal(total), ids[: 2 + i % 3]))
            for i, total in enumerate(["10.00", "33.33", "7.01", "120.50", "0.03", "99.99"])
        ]
        settlements = [
            settlement("bob", "alice", "12.34"),
            settlement("carol", "dave", "5.55"),
            settlement("dave", "bob", "1.00", confirmed=False),
        ]

        rows = service.compute_balances(members, expenses, settlements)

        assert sum(row.balance for row in rows) == Decimal("0.00")

    def test_unknown_member_logged_and_excluded(self, service, members, caplog):
        with caplog.at_level(logging.WARNING, logger="src.services.balance_service"):
            rows = service.compute_balances(
                members[:1],
                [expense("alice", "10.00", {"ghost": "10.00"})],
                [],
            )

        assert [row.member_id for row in rows] == ["alice"]
        assert rows[0].balance == Decimal("10.00")
        assert "ghost" in caplog.text


class TestPendingSettlements:
    def test_filters_unconfirmed(self):
        pending = settlement("a", "b", "1.00", confirmed=False)
        confirmed = settlement("a", "b", "2.00")

        assert BalanceService.pending_settlements([pending, confirmed]) == [pending]
