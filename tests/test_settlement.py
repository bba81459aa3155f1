"""
Tests for the settlement recorder.

Debts are seeded straight into storage with explicit timestamps so the
oldest-first order is known.
"""

import pytest
from datetime import datetime, timedelta, timezone

from groupledger.errors import InvalidSettlementError
from groupledger.ledger import Ledger, SettlementRecorder, find_debt_path
from groupledger.models import Debt, Money, SimplifiedTransfer
from groupledger.services.storage import NotFoundError


START = datetime(2024, 12, 1, tzinfo=timezone.utc)


def debt(owed_by, owed_to, amount, minute=0):
    return Debt(
        group_id="trip",
        owed_by=owed_by,
        owed_to=owed_to,
        amount=Money.of(amount),
        created_at=START + timedelta(minutes=minute),
    )


def transfer(from_user, to_user, amount):
    return SimplifiedTransfer(from_user=from_user, to_user=to_user, amount=Money.of(amount))


def units(balances):
    return {user_id: amount.minor_units for user_id, amount in balances.items()}


async def seed(storage, *debts):
    await storage.add_debts(list(debts))
    return debts


class TestFindDebtPath:
    """Tests for the path search."""

    def test_direct_debt(self):
        """Test a one-hop path."""
        ab = debt("a", "b", "5.00")
        assert find_debt_path([ab], "a", "b") == [ab]

    def test_shortest_chain(self):
        """Test that the shortest chain wins over a longer one."""
        ab = debt("a", "b", "5.00", 0)
        bc = debt("b", "c", "5.00", 1)
        cd = debt("c", "d", "5.00", 2)
        bd = debt("b", "d", "5.00", 3)

        assert find_debt_path([ab, bc, cd, bd], "a", "d") == [ab, bd]

    def test_no_path(self):
        """Test that unrelated users have no path."""
        assert find_debt_path([debt("a", "b", "1.00")], "b", "a") is None
        assert find_debt_path([], "a", "b") is None


class TestSettle:
    """Tests for settling a single debt."""

    @pytest.mark.asyncio
    async def test_settle_debt(self, storage, group):
        """Test that a settled debt leaves the balances."""
        (bob_owes,) = await seed(storage, debt("bob", "alice", "10.00"))
        recorder = SettlementRecorder(storage)

        settled = await recorder.settle(bob_owes.id)

        assert settled.settled is True
        assert settled.settled_at is not None
        balances = await Ledger(storage, currency="USD").net_balances("trip")
        assert all(amount.is_zero for amount in balances.values())

    @pytest.mark.asyncio
    async def test_settle_twice_is_noop(self, storage, group):
        """Test that settling again returns the stored record unchanged."""
        (bob_owes,) = await seed(storage, debt("bob", "alice", "10.00"))
        recorder = SettlementRecorder(storage)

        first = await recorder.settle(bob_owes.id)
        second = await recorder.settle(bob_owes.id)

        assert second == first

    @pytest.mark.asyncio
    async def test_settle_unknown_debt(self, storage, group):
        """Test that an unknown debt is reported."""
        recorder = SettlementRecorder(storage)

        with pytest.raises(NotFoundError):
            await recorder.settle(debt("bob", "alice", "1.00").id)


class TestSettleTransfer:
    """Tests for settling simplified transfers."""

    @pytest.mark.asyncio
    async def test_direct_full_settlement(self, storage, group):
        """Test a transfer matching one debt exactly."""
        bob_owes, carol_owes = await seed(
            storage,
            debt("bob", "alice", "10.00", 0),
            debt("carol", "alice", "10.00", 1),
        )
        recorder = SettlementRecorder(storage)

        affected = await recorder.settle_transfer(transfer("bob", "alice", "10.00"), "trip")

        assert [d.id for d in affected] == [bob_owes.id]
        assert (await storage.get_debt(bob_owes.id)).settled is True
        assert (await storage.get_debt(carol_owes.id)).settled is False

    @pytest.mark.asyncio
    async def test_partial_settlement_splits_debt(self, storage, group):
        """Test that paying part of a debt splits it in two."""
        (bob_owes,) = await seed(storage, debt("bob", "alice", "10.00", 5))
        recorder = SettlementRecorder(storage)

        affected = await recorder.settle_transfer(transfer("bob", "alice", "4.00"), "trip")

        settled, remainder = affected
        assert settled.id == bob_owes.id
        assert settled.settled is True
        assert settled.amount == Money.of("4.00")

        assert remainder.settled is False
        assert remainder.amount == Money.of("6.00")
        assert remainder.parent_id == bob_owes.id
        assert remainder.created_at == bob_owes.created_at
        assert remainder.expense_id == bob_owes.expense_id

        balances = await Ledger(storage, currency="USD").net_balances("trip")
        assert units(balances)["bob"] == -600

    @pytest.mark.asyncio
    async def test_oldest_debt_settled_first(self, storage, group):
        """Test that payments go against the oldest debt first."""
        newer, older = await seed(
            storage,
            debt("bob", "alice", "5.00", 10),
            debt("bob", "alice", "5.00", 0),
        )
        recorder = SettlementRecorder(storage)

        affected = await recorder.settle_transfer(transfer("bob", "alice", "5.00"), "trip")

        assert [d.id for d in affected] == [older.id]

    @pytest.mark.asyncio
    async def test_chain_settled_along_path(self, storage, group):
        """Test that a -> b -> c debts are cleared by one a -> c payment."""
        await seed(
            storage,
            debt("alice", "bob", "10.00", 0),
            debt("bob", "carol", "10.00", 1),
        )
        ledger = Ledger(storage, currency="USD")
        recorder = SettlementRecorder(storage)

        (suggested,) = await ledger.simplify("trip")
        assert (suggested.from_user, suggested.to_user) == ("alice", "carol")

        affected = await recorder.settle_transfer(suggested, "trip")

        assert len(affected) == 2
        assert all(d.settled for d in affected)
        assert await ledger.list_debts("trip") == []

    @pytest.mark.asyncio
    async def test_reroute_when_no_path(self, storage, group):
        """Test re-routing: alice -> carol, bob -> carol, bob -> dave."""
        alice_carol, bob_carol, bob_dave = await seed(
            storage,
            debt("alice", "carol", "10.00", 0),
            debt("bob", "carol", "5.00", 1),
            debt("bob", "dave", "10.00", 2),
        )
        ledger = Ledger(storage, currency="USD")
        recorder = SettlementRecorder(storage)

        transfers = await ledger.simplify("trip")
        assert [(t.from_user, t.to_user, t.amount.minor_units) for t in transfers] == [
            ("bob", "carol", 1500),
            ("alice", "dave", 1000),
        ]

        # alice has no chain of debts to dave
        affected = await recorder.settle_transfer(transfers[1], "trip")

        rerouted = affected[-1]
        assert (rerouted.owed_by, rerouted.owed_to) == ("bob", "carol")
        assert rerouted.amount == Money.of("10.00")
        assert rerouted.expense_id is None
        assert rerouted.parent_id == bob_dave.id
        assert (await storage.get_debt(alice_carol.id)).settled is True
        assert (await storage.get_debt(bob_dave.id)).settled is True

        balances = await ledger.net_balances("trip")
        assert units(balances) == {"alice": 0, "bob": -1500, "carol": 1500, "dave": 0}

        await recorder.settle_transfer(transfers[0], "trip")

        balances = await ledger.net_balances("trip")
        assert all(amount.is_zero for amount in balances.values())
        assert await ledger.list_debts("trip") == []

    @pytest.mark.asyncio
    async def test_settling_every_transfer_clears_group(self, storage, group):
        """Test that paying every simplified transfer leaves nothing open."""
        await seed(
            storage,
            debt("alice", "bob", "3.33", 0),
            debt("carol", "dave", "7.50", 1),
            debt("bob", "carol", "1.01", 2),
            debt("dave", "alice", "2.00", 3),
            debt("carol", "alice", "4.44", 4),
            debt("bob", "dave", "0.99", 5),
        )
        ledger = Ledger(storage, currency="USD")
        recorder = SettlementRecorder(storage)

        for suggested in await ledger.simplify("trip"):
            await recorder.settle_transfer(suggested, "trip")

        balances = await ledger.net_balances("trip")
        assert all(amount.is_zero for amount in balances.values())
        assert await ledger.simplify("trip") == []

    @pytest.mark.asyncio
    async def test_overpayment_rejected(self, storage, group):
        """Test that a payer cannot pay more than they owe."""
        (bob_owes,) = await seed(storage, debt("bob", "alice", "10.00"))
        recorder = SettlementRecorder(storage)

        with pytest.raises(InvalidSettlementError, match="owes"):
            await recorder.settle_transfer(transfer("bob", "alice", "10.01"), "trip")

        assert (await storage.get_debt(bob_owes.id)).settled is False

    @pytest.mark.asyncio
    async def test_transfer_in_other_currency_rejected(self, storage, group):
        """Test that a transfer must use the group's debt currency."""
        (bob_owes,) = await seed(storage, debt("bob", "alice", "10.00"))
        recorder = SettlementRecorder(storage)
        euros = SimplifiedTransfer(
            from_user="bob", to_user="alice", amount=Money.of("5.00", "EUR")
        )

        with pytest.raises(InvalidSettlementError, match="EUR"):
            await recorder.settle_transfer(euros, "trip")

        assert (await storage.get_debt(bob_owes.id)).settled is False

    @pytest.mark.asyncio
    async def test_receiver_not_owed_rejected(self, storage, group):
        """Test that the receiver must be owed the amount."""
        await seed(
            storage,
            debt("bob", "alice", "10.00", 0),
            debt("carol", "bob", "10.00", 1),
        )
        recorder = SettlementRecorder(storage)

        with pytest.raises(InvalidSettlementError, match="is owed"):
            await recorder.settle_transfer(transfer("carol", "bob", "5.00"), "trip")
