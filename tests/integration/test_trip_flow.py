"""Integration tests for trip, expense and settlement workflows."""

from decimal import Decimal

import pytest

from src.services.auth_service import AuthContext
from src.services.errors import ForbiddenError, NotFoundError, ValidationError
from src.services.receipt_service import ReceiptService
from src.services.trip_service import TripService
from src.services.user_service import UserService


@pytest.fixture
async def profiles(session, alice, bob, carol, dave):
    """Profiles for every test caller."""
    users = UserService(session)
    for auth in (alice, bob, carol, dave):
        await users.ensure_user_profile(auth)
    await session.commit()


@pytest.fixture
def service(session, app_config):
    return TripService(session, app_config)


@pytest.fixture
async def trip(service, profiles, alice, bob, carol, dave):
    """Trip owned by Alice with Bob, Carol and Dave."""
    return await service.create_trip(
        alice,
        name="Lisbon",
        start_date="2025-06-01",
        member_ids=[bob.user_id, carol.user_id, dave.user_id],
    )


def balances_of(summary):
    return {row.member_id: row.balance for row in summary.balances}


class TestTrips:
    """Trip creation, listing and updates."""

    @pytest.mark.asyncio
    async def test_create_trip_members_in_order(self, service, trip, alice):
        summary = await service.get_trip_summary(trip.id, alice)

        assert trip.id.startswith("trip_")
        assert trip.currency == "USD"
        assert [m.member_id for m in summary.members] == [
            "user-alice",
            "user-bob",
            "user-carol",
            "user-dave",
        ]
        assert summary.members[1].display_name == "Bob"

    @pytest.mark.asyncio
    async def test_create_trip_requires_existing_profiles(self, service, profiles, alice):
        with pytest.raises(ValidationError, match="Some members do not exist: ghost"):
            await service.create_trip(alice, name="Nowhere", member_ids=["ghost"])

    @pytest.mark.asyncio
    async def test_blank_name_rejected(self, service, profiles, alice):
        with pytest.raises(ValidationError, match="Trip name is required"):
            await service.create_trip(alice, name="  ")

    @pytest.mark.asyncio
    async def test_list_trips_only_for_members(self, service, trip, alice, bob, session):
        outsider = TripService(session)
        other = await outsider.create_trip(bob, name="Bob solo")

        alice_trips = await service.list_trips(alice)
        bob_trips = await service.list_trips(bob)

        assert [t.id for t in alice_trips] == [trip.id]
        assert {t.id for t in bob_trips} == {trip.id, other.id}

    @pytest.mark.asyncio
    async def test_owner_updates_and_clears_dates(self, service, trip, alice):
        updated = await service.update_trip(
            trip.id, {"name": "Porto", "start_date": None}, alice
        )

        assert updated.name == "Porto"
        assert updated.start_date is None

    @pytest.mark.asyncio
    async def test_non_owner_cannot_update(self, service, trip, bob):
        with pytest.raises(ForbiddenError):
            await service.update_trip(trip.id, {"name": "Mine"}, bob)

    @pytest.mark.asyncio
    async def test_empty_update_rejected(self, service, trip, alice):
        with pytest.raises(ValidationError, match="No updates provided"):
            await service.update_trip(trip.id, {}, alice)

    @pytest.mark.asyncio
    async def test_summary_requires_membership(self, service, profiles, alice, bob):
        solo = await service.create_trip(alice, name="Solo")

        with pytest.raises(ForbiddenError):
            await service.get_trip_summary(solo.id, bob)

    @pytest.mark.asyncio
    async def test_unknown_trip(self, service, profiles, alice):
        with pytest.raises(NotFoundError):
            await service.get_trip_summary("trip_missing", alice)


class TestMembers:
    """Adding and removing members."""

    @pytest.mark.asyncio
    async def test_add_member_appends_in_order(self, service, profiles, alice, bob, carol):
        trip = await service.create_trip(alice, name="Small", member_ids=[bob.user_id])

        added = await service.add_members(trip.id, [carol.user_id, carol.user_id], alice)
        summary = await service.get_trip_summary(trip.id, alice)

        assert [m.member_id for m in added] == ["user-carol"]
        assert [m.member_id for m in summary.members][-1] == "user-carol"

    @pytest.mark.asyncio
    async def test_add_existing_members_rejected(self, service, trip, alice, bob):
        with pytest.raises(ValidationError, match="already in the trip"):
            await service.add_members(trip.id, [bob.user_id], alice)

    @pytest.mark.asyncio
    async def test_only_owner_adds_members(self, service, trip, bob, carol):
        with pytest.raises(ForbiddenError):
            await service.add_members(trip.id, [carol.user_id], bob)

    @pytest.mark.asyncio
    async def test_remove_member_without_records(self, service, trip, alice, dave):
        await service.remove_member(trip.id, dave.user_id, alice)
        summary = await service.get_trip_summary(trip.id, alice)

        assert "user-dave" not in [m.member_id for m in summary.members]

    @pytest.mark.asyncio
    async def test_cannot_remove_owner(self, service, trip, alice):
        with pytest.raises(ValidationError, match="owner"):
            await service.remove_member(trip.id, alice.user_id, alice)

    @pytest.mark.asyncio
    async def test_cannot_remove_member_with_expenses(self, service, trip, alice, bob):
        await service.create_expense(
            trip.id,
            alice,
            description="Taxi",
            total=Decimal("20.00"),
            paid_by_member_id=alice.user_id,
            shared_with_member_ids=[alice.user_id, bob.user_id],
        )

        with pytest.raises(ValidationError, match="recorded expenses"):
            await service.remove_member(trip.id, bob.user_id, alice)

    @pytest.mark.asyncio
    async def test_cannot_remove_member_with_settlements(self, service, trip, alice, carol):
        await service.record_settlement(
            trip.id, alice, from_member_id=carol.user_id, to_member_id=alice.user_id, amount="5"
        )

        with pytest.raises(ValidationError, match="recorded settlements"):
            await service.remove_member(trip.id, carol.user_id, alice)


class TestExpenses:
    """Expense creation, validation, update and delete."""

    @pytest.mark.asyncio
    async def test_even_split_payer_outside(self, service, trip, alice, bob, carol, dave):
        """Alice pays 100.00 shared by the other three."""
        expense = await service.create_expense(
            trip.id,
            alice,
            description="Dinner",
            total=Decimal("100.00"),
            paid_by_member_id=alice.user_id,
            shared_with_member_ids=[bob.user_id, carol.user_id, dave.user_id],
        )
        summary = await service.get_trip_summary(trip.id, alice)

        assert [(a.member_id, a.amount) for a in expense.allocations] == [
            ("user-bob", Decimal("33.34")),
            ("user-carol", Decimal("33.33")),
            ("user-dave", Decimal("33.33")),
        ]
        assert balances_of(summary) == {
            "user-alice": Decimal("100.00"),
            "user-bob": Decimal("-33.34"),
            "user-carol": Decimal("-33.33"),
            "user-dave": Decimal("-33.33"),
        }
        assert sum(balances_of(summary).values()) == Decimal("0.00")
        assert [(s.from_member_id, s.to_member_id, s.amount) for s in summary.suggestions] == [
            ("user-bob", "user-alice", Decimal("33.34")),
            ("user-carol", "user-alice", Decimal("33.33")),
            ("user-dave", "user-alice", Decimal("33.33")),
        ]

    @pytest.mark.asyncio
    async def test_remainder_member(self, service, trip, alice, bob, carol):
        expense = await service.create_expense(
            trip.id,
            alice,
            description="Tickets",
            total="10.00",
            paid_by_member_id=alice.user_id,
            shared_with_member_ids=[alice.user_id, bob.user_id, carol.user_id],
            remainder_member_id=carol.user_id,
        )

        shares = {a.member_id: a.amount for a in expense.allocations}
        assert shares["user-carol"] == Decimal("3.34")
        assert shares["user-alice"] == Decimal("3.33")

    @pytest.mark.asyncio
    async def test_custom_allocations_within_tolerance(self, service, trip, alice, bob):
        expense = await service.create_expense(
            trip.id,
            alice,
            description="Groceries",
            total="30.00",
            tax="2.00",
            paid_by_member_id=bob.user_id,
            shared_with_member_ids=[alice.user_id, bob.user_id],
            allocations=[(alice.user_id, "10.00"), (bob.user_id, "20.03")],
        )

        assert expense.tax == Decimal("2.00")
        assert [(a.member_id, a.amount) for a in expense.allocations] == [
            ("user-alice", Decimal("10.00")),
            ("user-bob", Decimal("20.00")),
        ]

    @pytest.mark.asyncio
    async def test_near_miss_split_keeps_balances_conserved(self, service, trip, alice, bob):
        expense = await service.create_expense(
            trip.id,
            alice,
            description="Hotel",
            total="100.00",
            paid_by_member_id=alice.user_id,
            shared_with_member_ids=[alice.user_id, bob.user_id],
            allocations=[(alice.user_id, "50.00"), (bob.user_id, "49.95")],
        )
        summary = await service.get_trip_summary(trip.id, alice)

        assert sum(a.amount for a in expense.allocations) == Decimal("100.00")
        assert sum(balances_of(summary).values()) == 0
        assert balances_of(summary)["user-bob"] == Decimal("-50.00")

    @pytest.mark.asyncio
    async def test_near_miss_residual_goes_to_remainder_member(self, service, trip, alice, bob):
        expense = await service.create_expense(
            trip.id,
            alice,
            description="Hotel",
            total="100.00",
            paid_by_member_id=alice.user_id,
            shared_with_member_ids=[alice.user_id, bob.user_id],
            allocations=[(alice.user_id, "50.02"), (bob.user_id, "50.00")],
            remainder_member_id=alice.user_id,
        )

        assert [(a.member_id, a.amount) for a in expense.allocations] == [
            ("user-alice", Decimal("50.00")),
            ("user-bob", Decimal("50.00")),
        ]

    @pytest.mark.asyncio
    async def test_custom_allocations_mismatch_rejected(self, service, trip, alice, bob):
        with pytest.raises(ValidationError, match="does not match expense total"):
            await service.create_expense(
                trip.id,
                alice,
                description="Groceries",
                total="30.00",
                paid_by_member_id=bob.user_id,
                shared_with_member_ids=[alice.user_id, bob.user_id],
                allocations=[(alice.user_id, "10.00"), (bob.user_id, "10.00")],
            )

        summary = await service.get_trip_summary(trip.id, alice)
        assert summary.expenses == []

    @pytest.mark.asyncio
    async def test_non_member_payer_rejected(self, service, trip, alice):
        with pytest.raises(ValidationError, match="not part of trip"):
            await service.create_expense(
                trip.id,
                alice,
                description="Mystery",
                total="5.00",
                paid_by_member_id="user-zed",
                shared_with_member_ids=[alice.user_id],
            )

    @pytest.mark.asyncio
    async def test_non_positive_total_rejected(self, service, trip, alice):
        with pytest.raises(ValidationError, match="must be positive"):
            await service.create_expense(
                trip.id,
                alice,
                description="Free",
                total="0",
                paid_by_member_id=alice.user_id,
                shared_with_member_ids=[alice.user_id],
            )

    @pytest.mark.asyncio
    async def test_no_participants_rejected(self, service, trip, alice):
        with pytest.raises(ValidationError, match="At least one participant"):
            await service.create_expense(
                trip.id,
                alice,
                description="Nobody",
                total="5.00",
                paid_by_member_id=alice.user_id,
                shared_with_member_ids=[],
            )

    @pytest.mark.asyncio
    async def test_outsider_cannot_add_expense(self, service, trip, session):
        from src.services.auth_service import AuthContext

        stranger = AuthContext(user_id="user-stranger", name="Stranger")
        with pytest.raises(ForbiddenError):
            await service.create_expense(
                trip.id,
                stranger,
                description="Sneaky",
                total="5.00",
                paid_by_member_id="user-stranger",
                shared_with_member_ids=["user-stranger"],
            )

    @pytest.mark.asyncio
    async def test_update_total_resplits_evenly(self, service, trip, alice, bob):
        expense = await service.create_expense(
            trip.id,
            alice,
            description="Fuel",
            total="10.00",
            paid_by_member_id=alice.user_id,
            shared_with_member_ids=[alice.user_id, bob.user_id],
        )

        updated = await service.update_expense(trip.id, expense.id, alice, total="15.01")

        assert updated.total == Decimal("15.01")
        assert [a.amount for a in updated.allocations] == [Decimal("7.51"), Decimal("7.50")]

    @pytest.mark.asyncio
    async def test_update_members_resplits(self, service, trip, alice, bob, carol):
        expense = await service.create_expense(
            trip.id,
            alice,
            description="Museum",
            total="30.00",
            paid_by_member_id=alice.user_id,
            shared_with_member_ids=[alice.user_id, bob.user_id],
        )

        updated = await service.update_expense(
            trip.id,
            expense.id,
            alice,
            shared_with_member_ids=[alice.user_id, bob.user_id, carol.user_id],
        )

        assert updated.shared_with_member_ids == ["user-alice", "user-bob", "user-carol"]
        assert [a.amount for a in updated.allocations] == [Decimal("10.00")] * 3

    @pytest.mark.asyncio
    async def test_update_with_bad_allocations_rejected(self, service, trip, alice, bob):
        expense = await service.create_expense(
            trip.id,
            alice,
            description="Fuel",
            total="10.00",
            paid_by_member_id=alice.user_id,
            shared_with_member_ids=[alice.user_id, bob.user_id],
        )

        with pytest.raises(ValidationError):
            await service.update_expense(
                trip.id, expense.id, alice, allocations=[(alice.user_id, "1.00")]
            )

    @pytest.mark.asyncio
    async def test_delete_by_payer_or_owner_only(self, service, trip, alice, bob, carol):
        expense = await service.create_expense(
            trip.id,
            bob,
            description="Snacks",
            total="6.00",
            paid_by_member_id=bob.user_id,
            shared_with_member_ids=[bob.user_id, carol.user_id],
        )

        with pytest.raises(ForbiddenError):
            await service.delete_expense(trip.id, expense.id, carol)

        await service.delete_expense(trip.id, expense.id, alice)
        summary = await service.get_trip_summary(trip.id, alice)
        assert summary.expenses == []

    @pytest.mark.asyncio
    async def test_delete_unknown_expense(self, service, trip, alice):
        with pytest.raises(NotFoundError):
            await service.delete_expense(trip.id, "exp_missing", alice)

    @pytest.mark.asyncio
    async def test_preview_allocations(self, service, trip, alice, bob, carol):
        result = await service.preview_allocations(
            trip.id, alice, Decimal("10.00"), [alice.user_id, bob.user_id, carol.user_id]
        )

        assert result.is_balanced
        assert result.as_mapping()["user-alice"] == Decimal("3.34")


class TestSettlements:
    """Pending and confirmed settlements."""

    @pytest.fixture
    async def dinner(self, service, trip, alice, bob):
        return await service.create_expense(
            trip.id,
            alice,
            description="Dinner",
            total="50.00",
            paid_by_member_id=alice.user_id,
            shared_with_member_ids=[alice.user_id, bob.user_id],
        )

    @pytest.mark.asyncio
    async def test_pending_settlement_does_not_move_balances(
        self, service, trip, dinner, alice, bob
    ):
        settlement = await service.record_settlement(
            trip.id, bob, from_member_id=bob.user_id, to_member_id=alice.user_id, amount="25.00"
        )
        summary = await service.get_trip_summary(trip.id, alice)

        assert settlement.confirmed_at is None
        assert balances_of(summary)["user-bob"] == Decimal("-25.00")
        assert [s.id for s in summary.pending_settlements] == [settlement.id]

    @pytest.mark.asyncio
    async def test_confirmed_settlement_clears_balances(self, service, trip, dinner, alice, bob):
        settlement = await service.record_settlement(
            trip.id, bob, from_member_id=bob.user_id, to_member_id=alice.user_id, amount="25.00"
        )

        confirmed = await service.confirm_settlement(trip.id, settlement.id, True, alice)
        first_confirmed_at = confirmed.confirmed_at
        again = await service.confirm_settlement(trip.id, settlement.id, True, bob)
        summary = await service.get_trip_summary(trip.id, alice)

        assert again.confirmed_at == first_confirmed_at
        assert all(balance == Decimal("0.00") for balance in balances_of(summary).values())
        assert summary.suggestions == []
        assert summary.pending_settlements == []

    @pytest.mark.asyncio
    async def test_unconfirm_restores_pending(self, service, trip, dinner, alice, bob):
        settlement = await service.record_settlement(
            trip.id, bob, from_member_id=bob.user_id, to_member_id=alice.user_id, amount="25.00"
        )
        await service.confirm_settlement(trip.id, settlement.id, True, alice)

        reverted = await service.confirm_settlement(trip.id, settlement.id, False, alice)

        assert reverted.confirmed_at is None

    @pytest.mark.asyncio
    async def test_same_member_rejected(self, service, trip, alice):
        with pytest.raises(ValidationError, match="different members"):
            await service.record_settlement(
                trip.id,
                alice,
                from_member_id=alice.user_id,
                to_member_id=alice.user_id,
                amount="5.00",
            )

    @pytest.mark.asyncio
    async def test_non_positive_amount_rejected(self, service, trip, alice, bob):
        with pytest.raises(ValidationError, match="must be positive"):
            await service.record_settlement(
                trip.id, alice, from_member_id=bob.user_id, to_member_id=alice.user_id, amount="0"
            )

    @pytest.mark.asyncio
    async def test_third_party_cannot_confirm(self, service, trip, alice, bob, carol):
        settlement = await service.record_settlement(
            trip.id, bob, from_member_id=bob.user_id, to_member_id=alice.user_id, amount="5.00"
        )

        with pytest.raises(ForbiddenError):
            await service.confirm_settlement(trip.id, settlement.id, True, carol)

    @pytest.mark.asyncio
    async def test_delete_settlement(self, service, trip, alice, bob):
        settlement = await service.record_settlement(
            trip.id, bob, from_member_id=bob.user_id, to_member_id=alice.user_id, amount="5.00"
        )

        await service.delete_settlement(trip.id, settlement.id, bob)
        summary = await service.get_trip_summary(trip.id, alice)

        assert summary.settlements == []
        with pytest.raises(NotFoundError):
            await service.delete_settlement(trip.id, settlement.id, bob)


class TestReceipts:
    """Receipt registration, extraction results and drafts."""

    @pytest.mark.asyncio
    async def test_receipt_lifecycle(self, session, service, trip, alice):
        receipts = ReceiptService(session, service)

        receipt = await receipts.create_receipt(trip.id, "lunch.png", "image/png", alice)
        assert receipt.status == "PENDING_UPLOAD"
        assert receipt.storage_key == f"trips/{trip.id}/receipts/{receipt.id}.png"

        with pytest.raises(ValidationError, match="not been processed"):
            await receipts.get_expense_draft(trip.id, receipt.id, alice)

        await receipts.record_extraction(
            trip.id, receipt.id, {"merchant_name": "Luna", "total": "$12.40"}, alice
        )
        draft = await receipts.get_expense_draft(trip.id, receipt.id, alice)

        assert draft.vendor == "Luna"
        assert draft.total == Decimal("12.40")
        assert draft.receipt_id == receipt.id

        expense = await service.create_expense(
            trip.id,
            alice,
            description=draft.description,
            total=draft.total,
            paid_by_member_id=alice.user_id,
            shared_with_member_ids=[alice.user_id],
            receipt_id=draft.receipt_id,
        )
        assert expense.receipt_id == receipt.id

    @pytest.mark.asyncio
    async def test_receipt_failure(self, session, service, trip, alice):
        receipts = ReceiptService(session, service)
        receipt = await receipts.create_receipt(trip.id, "blurry.jpg", "image/jpeg", alice)

        failed = await receipts.record_failure(trip.id, receipt.id, "Unreadable image", alice)

        assert failed.status == "FAILED"
        assert failed.failure_reason == "Unreadable image"

    @pytest.mark.asyncio
    async def test_outsider_cannot_record_results(self, session, service, trip, alice):
        receipts = ReceiptService(session, service)
        receipt = await receipts.create_receipt(trip.id, "lunch.png", "image/png", alice)
        outsider = AuthContext(user_id="user-mallory", name="Mallory")

        with pytest.raises(ForbiddenError):
            await receipts.record_extraction(
                trip.id, receipt.id, {"merchant_name": "Evil", "total": "9999.99"}, outsider
            )
        with pytest.raises(ForbiddenError):
            await receipts.record_failure(trip.id, receipt.id, "Nope", outsider)

        await session.refresh(receipt)
        assert receipt.status == "PENDING_UPLOAD"
        assert receipt.extracted_data is None

    @pytest.mark.asyncio
    async def test_expense_with_unknown_receipt_rejected(self, service, trip, alice):
        with pytest.raises(ValidationError, match="Receipt not found"):
            await service.create_expense(
                trip.id,
                alice,
                description="Ghost receipt",
                total="5.00",
                paid_by_member_id=alice.user_id,
                shared_with_member_ids=[alice.user_id],
                receipt_id="rcpt_missing",
            )
