"""
Debt Simplifier

Reduces a group's net balances to a short list of point-to-point
transfers that reproduces every balance exactly.

ALGORITHM (greedy largest-magnitude matching):
1. Users with a negative balance are debtors, positive are creditors;
   zero balances are dropped.
2. Pair the largest debtor with the largest creditor (ties: lower user
   id first) and transfer the smaller of the two magnitudes.
3. Put back whichever party still has a non-zero balance; repeat.

Greedy matching is not guaranteed to find the absolute minimum number of
transfers (that problem is NP-hard), but it is deterministic, runs in
O(n log n) and is always exact: all arithmetic is in minor units.
"""

import heapq
from typing import Mapping

import structlog

from groupledger.errors import UnbalancedLedgerError
from groupledger.models.ledger import SimplifiedTransfer
from groupledger.models.money import Money


logger = structlog.get_logger(__name__)


def check_conservation(balances: Mapping[str, Money]) -> None:
    """
    Raise UnbalancedLedgerError unless the balances sum to exactly zero.
    """
    currencies = {amount.currency for amount in balances.values()}
    if len(currencies) > 1:
        raise UnbalancedLedgerError(
            f"Balances mix currencies: {', '.join(sorted(currencies))}"
        )

    imbalance = sum(amount.minor_units for amount in balances.values())
    if imbalance != 0:
        currency = currencies.pop()
        off_by = Money(minor_units=imbalance, currency=currency)
        logger.error("ledger_unbalanced", imbalance=str(off_by))
        raise UnbalancedLedgerError(
            f"Net balances sum to {off_by}, expected zero",
            imbalance=off_by,
        )


def simplify_balances(balances: Mapping[str, Money]) -> list[SimplifiedTransfer]:
    """
    Compute settlement transfers for a zero-sum balance map.

    Args:
        balances: user_id -> signed net balance
                  (positive = is owed money, negative = owes money)

    Returns:
        Transfers in the order they were matched

    Raises:
        UnbalancedLedgerError: If the balances do not sum to zero
    """
    if not balances:
        return []

    check_conservation(balances)
    currency = next(iter(balances.values())).currency

    # Heaps of (-magnitude, user_id): largest first, then lowest id
    debtors: list[tuple[int, str]] = []
    creditors: list[tuple[int, str]] = []

    for user_id, amount in balances.items():
        if amount.minor_units < 0:
            debtors.append((amount.minor_units, user_id))
        elif amount.minor_units > 0:
            creditors.append((-amount.minor_units, user_id))

    heapq.heapify(debtors)
    heapq.heapify(creditors)

    transfers = []

    while debtors and creditors:
        debt_neg, debtor = heapq.heappop(debtors)
        credit_neg, creditor = heapq.heappop(creditors)

        debt = -debt_neg
        credit = -credit_neg
        amount = min(debt, credit)

        transfers.append(SimplifiedTransfer(
            from_user=debtor,
            to_user=creditor,
            amount=Money(minor_units=amount, currency=currency),
        ))

        if debt > amount:
            heapq.heappush(debtors, (-(debt - amount), debtor))
        if credit > amount:
            heapq.heappush(creditors, (-(credit - amount), creditor))

    # Zero-sum input means both heaps empty together
    if debtors or creditors:
        raise UnbalancedLedgerError("Simplification left unmatched balances")

    return transfers


def apply_transfers(
    balances: Mapping[str, Money],
    transfers: list[SimplifiedTransfer],
) -> dict[str, Money]:
    """
    Return the balances left after every transfer is paid.

    Paying a transfer raises the payer's balance and lowers the
    receiver's. For the output of simplify_balances every result is zero.
    """
    result = dict(balances)
    for transfer in transfers:
        zero = Money.zero(transfer.amount.currency)
        result[transfer.from_user] = result.get(transfer.from_user, zero) + transfer.amount
        result[transfer.to_user] = result.get(transfer.to_user, zero) - transfer.amount
    return result
