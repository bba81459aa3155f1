"""
Group Ledger

Turns recorded expenses into pairwise debts and derives net balances.

GUARANTEES:
- One Debt per (expense, participant) pair; the payer never owes themselves
- Edits are delete-then-recreate, never an in-place change of an amount
- Net balances are recomputed from unsettled debts on every call, so they
  cannot go stale, and always sum to zero (otherwise UnbalancedLedgerError)

The ledger is handed its storage explicitly; it holds no other state.
"""

from typing import Optional
from uuid import UUID

import structlog

from groupledger.config import get_settings
from groupledger.errors import InvalidSplitError
from groupledger.ledger.simplifier import check_conservation, simplify_balances
from groupledger.models.ledger import (
    Debt,
    Expense,
    Group,
    SimplifiedTransfer,
    utc_now,
)
from groupledger.models.money import Money
from groupledger.services.storage import (
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
)


logger = structlog.get_logger(__name__)


def debts_for_expense(expense: Expense) -> list[Debt]:
    """
    Build the debts an expense creates, in share order.

    Each participant with a positive share who is not the payer owes
    the payer their share. Standalone expenses create no debts.
    """
    if expense.group_id is None:
        return []

    created_at = utc_now()
    return [
        Debt(
            expense_id=expense.id,
            group_id=expense.group_id,
            owed_by=share.user_id,
            owed_to=expense.payer_id,
            amount=share.amount,
            created_at=created_at,
        )
        for share in expense.shares
        if share.amount.is_positive and share.user_id != expense.payer_id
    ]


def compute_net_balances(
    debts: list[Debt],
    member_ids: tuple[str, ...] = (),
    default_currency: str = "USD",
) -> dict[str, Money]:
    """
    Net balance per user from a list of debts.

    Settled debts are ignored. Every listed member appears in the result,
    with zero if they have no open debts.
    """
    currency = debts[0].amount.currency if debts else default_currency

    balances: dict[str, Money] = {
        member_id: Money.zero(currency) for member_id in member_ids
    }
    zero = Money.zero(currency)

    for debt in debts:
        if debt.settled:
            continue
        balances[debt.owed_by] = balances.get(debt.owed_by, zero) - debt.amount
        balances[debt.owed_to] = balances.get(debt.owed_to, zero) + debt.amount

    return balances


class Ledger:
    """
    Records expenses for groups and reports who owes whom.

    Usage:
        ledger = Ledger(storage)
        debts = await ledger.record_expense(expense)
        balances = await ledger.net_balances(group_id)
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        currency: Optional[str] = None,
    ):
        self._storage = storage
        self._currency = currency or get_settings().ledger.currency

    async def get_group(self, group_id: str) -> Group:
        group = await self._storage.get_group(group_id)
        if group is None:
            raise NotFoundError(f"Group {group_id} not found")
        return group

    async def _validate_expense(self, expense: Expense) -> None:
        """Check that every referenced user and group exists."""
        user_ids = [expense.payer_id] + [
            user_id for user_id in expense.participant_ids
            if user_id != expense.payer_id
        ]
        for user_id in user_ids:
            if await self._storage.get_user(user_id) is None:
                raise NotFoundError(f"User {user_id} not found")

        if expense.group_id is None:
            return

        group = await self.get_group(expense.group_id)
        outsiders = [user_id for user_id in user_ids if not group.has_member(user_id)]
        if outsiders:
            raise InvalidSplitError(
                f"Not members of group {group.name}: {', '.join(outsiders)}"
            )

    async def record_expense(self, expense: Expense) -> list[Debt]:
        """
        Store an expense and the debts it creates.

        Returns:
            The debts created, in share order

        Raises:
            NotFoundError: If the payer, a participant or the group is unknown
            InvalidSplitError: If someone involved is not a group member
            DuplicateError: If the expense was already recorded
        """
        await self._validate_expense(expense)

        if await self._storage.get_expense(expense.id) is not None:
            raise DuplicateError(f"Expense {expense.id} already recorded")

        debts = debts_for_expense(expense)

        async with self._storage.transaction():
            await self._storage.add_expense(expense)
            await self._storage.add_debts(debts)

        logger.info(
            "expense_recorded",
            expense_id=str(expense.id),
            group_id=expense.group_id,
            amount=str(expense.amount),
            debt_count=len(debts),
        )
        return debts

    async def remove_expense(self, expense_id: UUID) -> int:
        """
        Delete an expense and every debt tied to it.

        Returns:
            The number of debts removed

        Raises:
            NotFoundError: If the expense doesn't exist
        """
        expense = await self._storage.get_expense(expense_id)
        if expense is None:
            raise NotFoundError(f"Expense {expense_id} not found")

        async with self._storage.transaction():
            removed = await self._storage.delete_debts_for_expense(expense_id)
            await self._storage.delete_expense(expense_id)

        logger.info(
            "expense_removed",
            expense_id=str(expense_id),
            group_id=expense.group_id,
            removed_debts=removed,
        )
        return removed

    async def replace_expense(self, expense: Expense) -> list[Debt]:
        """
        Replace a recorded expense with an edited version.

        The old debts are deleted and new ones created from the new
        split, all in one transaction: a failure leaves the old expense
        and its debts untouched.
        """
        async with self._storage.transaction():
            await self.remove_expense(expense.id)
            return await self.record_expense(expense)

    async def list_debts(self, group_id: str, include_settled: bool = False) -> list[Debt]:
        """Debts of a group, oldest first."""
        await self.get_group(group_id)
        return await self._storage.list_debts(group_id, include_settled=include_settled)

    async def net_balances(self, group_id: str) -> dict[str, Money]:
        """
        Net balance of every group member over unsettled debts.

        Positive: the user is owed money. Negative: the user owes money.

        Raises:
            NotFoundError: If the group doesn't exist
            UnbalancedLedgerError: If the balances do not sum to zero
        """
        group = await self.get_group(group_id)
        debts = await self._storage.list_debts(group_id)

        balances = compute_net_balances(debts, group.member_ids, self._currency)
        check_conservation(balances)
        return balances

    async def simplify(self, group_id: str) -> list[SimplifiedTransfer]:
        """Minimal settlement transfers for the group's current balances."""
        balances = await self.net_balances(group_id)
        return simplify_balances(balances)
