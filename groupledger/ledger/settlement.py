"""
Settlement Recorder

Marks debts as paid. Settlement only moves debts from the unsettled to
the settled side; it never changes what anyone owes overall.

Settling a simplified transfer (from_user pays to_user an amount) works
in two phases:

PATH PHASE:
    Find the shortest chain of unsettled debts from from_user to to_user
    (debts visited oldest first) and settle the smallest amount on the
    chain along all of it. Intermediaries receive and pass on the same
    amount, so only the two ends of the chain change balance.

RE-ROUTE PHASE:
    When no chain is left, settle the oldest debt out of from_user
    (from_user -> Z) and the oldest debt into to_user (W -> to_user) by
    the same amount, and record a new debt W -> Z for it. W and Z keep
    their balances; from_user and to_user move by the amount paid.

A debt settled for less than its amount is split: the original keeps
the settled portion, and a new unsettled debt carries the remainder.
"""

from collections import deque
from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog

from groupledger.errors import InvalidSettlementError
from groupledger.ledger.ledger import compute_net_balances
from groupledger.models.ledger import Debt, SimplifiedTransfer, utc_now
from groupledger.models.money import Money
from groupledger.services.storage import LedgerStorageInterface, NotFoundError


logger = structlog.get_logger(__name__)


def find_debt_path(
    open_debts: list[Debt],
    from_user: str,
    to_user: str,
) -> Optional[list[Debt]]:
    """
    Shortest chain of debts leading from from_user to to_user.

    Breadth-first over debts in the given (oldest-first) order, so the
    result is deterministic. Returns None if no chain exists.
    """
    outgoing: dict[str, list[Debt]] = {}
    for debt in open_debts:
        outgoing.setdefault(debt.owed_by, []).append(debt)

    came_by: dict[str, Optional[Debt]] = {from_user: None}
    queue = deque([from_user])

    while queue:
        user = queue.popleft()
        if user == to_user:
            break
        for debt in outgoing.get(user, []):
            if debt.owed_to not in came_by:
                came_by[debt.owed_to] = debt
                queue.append(debt.owed_to)

    if to_user not in came_by:
        return None

    path = []
    user = to_user
    while came_by[user] is not None:
        debt = came_by[user]
        path.append(debt)
        user = debt.owed_by
    path.reverse()
    return path


class SettlementRecorder:
    """
    Records payments against a group's debts.

    Usage:
        recorder = SettlementRecorder(storage)
        await recorder.settle(debt_id)
        affected = await recorder.settle_transfer(transfer, group_id)
    """

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def settle(self, debt_id: UUID) -> Debt:
        """
        Mark one debt as settled.

        Settling an already settled debt changes nothing.

        Raises:
            NotFoundError: If the debt doesn't exist
        """
        debt = await self._storage.get_debt(debt_id)
        if debt is None:
            raise NotFoundError(f"Debt {debt_id} not found")

        if debt.settled:
            logger.warning("debt_already_settled", debt_id=str(debt_id))
            return debt

        settled = debt.mark_settled()
        async with self._storage.transaction():
            await self._storage.update_debt(settled)

        logger.info(
            "debt_settled",
            debt_id=str(debt_id),
            group_id=debt.group_id,
            amount=str(debt.amount),
        )
        return settled

    async def _settle_portion(
        self,
        open_debts: list[Debt],
        debt: Debt,
        portion: Money,
        now: datetime,
        affected: list[Debt],
    ) -> None:
        """
        Settle `portion` of an open debt, splitting it if needed.

        Keeps `open_debts` in step with storage: a fully settled debt is
        removed, a split debt is replaced in place by its remainder.
        """
        index = open_debts.index(debt)

        if portion == debt.amount:
            settled = debt.mark_settled(now)
            await self._storage.update_debt(settled)
            affected.append(settled)
            del open_debts[index]
            return

        settled = debt.model_copy(update={
            "amount": portion,
            "settled": True,
            "settled_at": now,
        })
        remainder = Debt(
            expense_id=debt.expense_id,
            group_id=debt.group_id,
            owed_by=debt.owed_by,
            owed_to=debt.owed_to,
            amount=debt.amount - portion,
            created_at=debt.created_at,
            parent_id=debt.id,
        )
        await self._storage.update_debt(settled)
        await self._storage.add_debts([remainder])
        affected.extend([settled, remainder])
        open_debts[index] = remainder

    def _check_transfer(
        self,
        transfer: SimplifiedTransfer,
        open_debts: list[Debt],
    ) -> None:
        if not transfer.amount.is_positive:
            raise InvalidSettlementError("Transfer amount must be greater than zero")

        currencies = {debt.amount.currency for debt in open_debts}
        if currencies - {transfer.amount.currency}:
            raise InvalidSettlementError(
                f"Transfer is in {transfer.amount.currency}, "
                f"group debts are in {', '.join(sorted(currencies))}"
            )

        balances = compute_net_balances(
            open_debts,
            default_currency=transfer.amount.currency,
        )
        zero = Money.zero(transfer.amount.currency)
        owes = -balances.get(transfer.from_user, zero)
        owed = balances.get(transfer.to_user, zero)

        if owes < transfer.amount:
            raise InvalidSettlementError(
                f"{transfer.from_user} owes {owes} in this group, "
                f"cannot pay {transfer.amount}"
            )
        if owed < transfer.amount:
            raise InvalidSettlementError(
                f"{transfer.to_user} is owed {owed} in this group, "
                f"cannot receive {transfer.amount}"
            )

    async def settle_transfer(
        self,
        transfer: SimplifiedTransfer,
        group_id: str,
    ) -> list[Debt]:
        """
        Record that from_user paid to_user the transfer amount.

        Returns:
            Every debt written: settled debts, remainders of split
            debts and re-routed debts, in the order they were written

        Raises:
            InvalidSettlementError: If the payer does not owe, or the
                receiver is not owed, at least the amount
        """
        open_debts = await self._storage.list_debts(group_id)
        self._check_transfer(transfer, open_debts)

        now = utc_now()
        affected: list[Debt] = []
        remaining = transfer.amount

        async with self._storage.transaction():
            while remaining.is_positive:
                path = find_debt_path(open_debts, transfer.from_user, transfer.to_user)

                if path:
                    portion = min([remaining] + [debt.amount for debt in path])
                    for debt in path:
                        await self._settle_portion(open_debts, debt, portion, now, affected)
                    remaining = remaining - portion
                    continue

                outgoing = next(
                    (d for d in open_debts if d.owed_by == transfer.from_user), None
                )
                incoming = next(
                    (d for d in open_debts if d.owed_to == transfer.to_user), None
                )
                if outgoing is None or incoming is None:
                    # Ruled out by _check_transfer
                    raise InvalidSettlementError("No debts left to settle the transfer against")

                portion = min(remaining, outgoing.amount, incoming.amount)
                await self._settle_portion(open_debts, outgoing, portion, now, affected)
                await self._settle_portion(open_debts, incoming, portion, now, affected)
                remaining = remaining - portion

                if incoming.owed_by == outgoing.owed_to:
                    continue

                rerouted = Debt(
                    group_id=group_id,
                    owed_by=incoming.owed_by,
                    owed_to=outgoing.owed_to,
                    amount=portion,
                    created_at=now,
                    parent_id=incoming.id,
                )
                await self._storage.add_debts([rerouted])
                open_debts.append(rerouted)
                affected.append(rerouted)

        logger.info(
            "transfer_settled",
            group_id=group_id,
            from_user=transfer.from_user,
            to_user=transfer.to_user,
            amount=str(transfer.amount),
            affected_debts=len(affected),
        )
        return affected
