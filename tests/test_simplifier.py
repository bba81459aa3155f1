"""
Tests for debt simplification.
"""

import pytest

from groupledger.errors import UnbalancedLedgerError
from groupledger.ledger import apply_transfers, check_conservation, simplify_balances
from groupledger.models import Money


def balances_of(**amounts):
    return {user_id: Money.of(amount) for user_id, amount in amounts.items()}


def as_tuples(transfers):
    return [(t.from_user, t.to_user, t.amount.minor_units) for t in transfers]


class TestSimplifyBalances:
    """Tests for greedy largest-first matching."""

    def test_one_creditor_two_debtors(self):
        """Test the three-way dinner: bob and carol each pay alice."""
        balances = balances_of(alice="20.00", bob="-10.00", carol="-10.00", dave="0")

        transfers = simplify_balances(balances)

        # Equal magnitudes: lower user id first
        assert as_tuples(transfers) == [("bob", "alice", 1000), ("carol", "alice", 1000)]

    def test_chain_collapses_to_one_transfer(self):
        """Test that a -> b -> c becomes a single a -> c payment."""
        balances = balances_of(a="-10.00", b="0", c="10.00")
        assert as_tuples(simplify_balances(balances)) == [("a", "c", 1000)]

    def test_largest_matched_first(self):
        """Test matching order and partial remainders."""
        balances = balances_of(a="-7.01", b="-2.99", c="5.00", d="5.00")

        transfers = simplify_balances(balances)

        assert as_tuples(transfers) == [
            ("a", "c", 500),
            ("b", "d", 299),
            ("a", "d", 201),
        ]

    def test_reproduces_every_balance(self):
        """Test that paying every transfer zeroes every balance."""
        balances = balances_of(
            a="-33.33", b="12.00", c="-0.01", d="50.00", e="-28.66",
        )

        transfers = simplify_balances(balances)
        after = apply_transfers(balances, transfers)

        assert all(amount.is_zero for amount in after.values())
        assert len(transfers) <= len(balances) - 1

    def test_all_zero_needs_no_transfers(self):
        """Test that a settled group needs nothing."""
        assert simplify_balances(balances_of(a="0", b="0")) == []
        assert simplify_balances({}) == []

    def test_deterministic(self):
        """Test that insertion order of the balances does not matter."""
        forward = balances_of(a="-5.00", b="-5.00", c="5.00", d="5.00")
        backward = dict(reversed(list(forward.items())))

        assert as_tuples(simplify_balances(forward)) == as_tuples(simplify_balances(backward))

    def test_simplifying_simplified_is_stable(self):
        """Test that the transfers' own balances simplify to the same transfers."""
        balances = balances_of(a="-7.01", b="-2.99", c="5.00", d="5.00")
        transfers = simplify_balances(balances)

        zero = {user_id: Money.zero() for user_id in balances}
        replayed = apply_transfers(zero, [
            t.model_copy(update={"from_user": t.to_user, "to_user": t.from_user})
            for t in transfers
        ])

        assert replayed == balances
        assert simplify_balances(replayed) == transfers

    def test_unbalanced_input_rejected(self):
        """Test that balances not summing to zero are refused."""
        with pytest.raises(UnbalancedLedgerError) as exc_info:
            simplify_balances(balances_of(a="-10.00", b="9.99"))

        assert exc_info.value.imbalance == Money.of("-0.01")


class TestCheckConservation:
    """Tests for the zero-sum check."""

    def test_balanced(self):
        """Test that zero-sum balances pass."""
        check_conservation(balances_of(a="1.00", b="-1.00"))

    def test_mixed_currencies_rejected(self):
        """Test that balances in two currencies cannot be checked."""
        with pytest.raises(UnbalancedLedgerError, match="mix currencies"):
            check_conservation({"a": Money.of("1.00", "USD"), "b": Money.of("-1.00", "EUR")})
