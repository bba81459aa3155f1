"""
Main Orchestrator for the Group Ledger

This module ties together the split engine, the ledger, the simplifier
and the settlement recorder, and exposes them as one service:

1. Expenses   (split → record / edit / remove)
2. Balances   (net balances → simplified transfers)
3. Settlement (settle a debt / settle a simplified transfer)

DESIGN DECISION: The orchestrator enforces the boundaries:
- All mutations of one group are serialized by a per-group lock
- Readers take the same lock, so they never see half an edit
- Every mutation is one storage transaction, committed at the end;
  any failure rolls the whole operation back
- Every mutation is audited

Split Engine and Simplifier are pure, so they are called directly.
"""

import asyncio
from datetime import date
from typing import Optional, Sequence
from uuid import UUID

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from groupledger.audit import AuditLogger, create_correlation_id
from groupledger.config import LedgerSettings, get_settings
from groupledger.errors import (
    InvalidSettlementError,
    InvalidSplitError,
    UnbalancedLedgerError,
)
from groupledger.ledger import Ledger, SettlementRecorder, simplify_balances
from groupledger.models.ledger import (
    Category,
    Debt,
    Expense,
    Group,
    SimplifiedTransfer,
    SplitPolicy,
    User,
)
from groupledger.models.money import Money
from groupledger.queries import ExpenseQueryExecutor
from groupledger.services.storage import (
    ConnectionError,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    NotFoundError,
)
from groupledger.splitting import compute_split, shares_from_split


logger = structlog.get_logger(__name__)

STANDALONE = "__standalone__"


class GroupLedgerService:
    """
    The ledger's public face for UI and persistence collaborators.

    Usage:
        service = GroupLedgerService(InMemoryLedgerStorage())
        await service.register_user(User(id="a", name="Alice"))
        ...
        expense, debts = await service.add_expense(
            name="Dinner",
            total=Money.of("30.00"),
            policy=EqualSplit(),
            participants=["a", "b", "c"],
            payer_id="a",
            group_id="trip",
        )
        transfers = await service.simplify("trip")
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().ledger

        self._ledger = Ledger(storage, currency=self._settings.currency)
        self._recorder = SettlementRecorder(storage)
        self._queries = ExpenseQueryExecutor(storage)

        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def queries(self) -> ExpenseQueryExecutor:
        return self._queries

    def _lock_for(self, group_id: Optional[str]) -> asyncio.Lock:
        key = group_id or STANDALONE
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def _commit(self) -> None:
        """Commit pending writes, retrying transient connection failures."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._settings.commit_max_attempts),
            wait=wait_exponential(
                multiplier=self._settings.commit_retry_multiplier,
                max=self._settings.commit_retry_max_wait,
            ),
            retry=retry_if_exception_type(ConnectionError),
            reraise=True,
        ):
            with attempt:
                await self._storage.commit()

    async def _audit_storage_failure(
        self,
        operation: str,
        error: Exception,
        group_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_storage_error(
                operation=operation,
                error_message=str(error),
                group_id=group_id,
                correlation_id=correlation_id,
            )

    # -------------------------------------------------------------------------
    # Users and groups
    # -------------------------------------------------------------------------

    async def register_user(self, user: User) -> User:
        async with self._storage.transaction():
            await self._storage.save_user(user)
            await self._commit()
        return user

    async def create_group(self, group: Group) -> Group:
        """
        Store a group. Every member must be a registered user.

        Raises:
            NotFoundError: If a member is unknown
        """
        for member_id in group.member_ids:
            if await self._storage.get_user(member_id) is None:
                raise NotFoundError(f"User {member_id} not found")

        async with self._lock_for(group.id):
            async with self._storage.transaction():
                await self._storage.save_group(group)
                await self._commit()
        return group

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    def compute_split(
        self,
        total: Money,
        policy: SplitPolicy,
        participants: Sequence[str],
    ) -> dict[str, Money]:
        """
        Preview a split without recording anything.

        Raises:
            InvalidSplitError: If the policy does not reconcile to the total
        """
        return compute_split(
            total,
            policy,
            participants,
            percent_tolerance=self._settings.percent_tolerance,
        )

    async def record_expense(
        self,
        expense: Expense,
        correlation_id: Optional[UUID] = None,
    ) -> list[Debt]:
        """
        Record an expense whose shares are already computed.

        Returns:
            The debts created
        """
        correlation_id = correlation_id or create_correlation_id()

        async with self._lock_for(expense.group_id):
            try:
                async with self._storage.transaction():
                    debts = await self._ledger.record_expense(expense)
                    await self._commit()
            except InvalidSplitError as e:
                if self._audit_logger:
                    await self._audit_logger.log_split_rejected(
                        reason=str(e),
                        group_id=expense.group_id,
                        correlation_id=correlation_id,
                    )
                raise
            except ConnectionError as e:
                await self._audit_storage_failure("record_expense", e, expense.group_id, correlation_id)
                raise

        if self._audit_logger:
            await self._audit_logger.log_expense_recorded(
                expense_id=expense.id,
                group_id=expense.group_id,
                amount=str(expense.amount),
                debt_count=len(debts),
                correlation_id=correlation_id,
            )
        return debts

    def build_expense(
        self,
        total: Money,
        policy: SplitPolicy,
        participants: Sequence[str],
        payer_id: str,
        group_id: Optional[str] = None,
        name: str = "",
        category: Category = Category.OTHER,
        expense_date: Optional[date] = None,
        expense_id: Optional[UUID] = None,
    ) -> Expense:
        """Compute the split and build (but do not store) the expense."""
        split = self.compute_split(total, policy, participants)

        fields = dict(
            name=name,
            amount=total,
            category=category,
            payer_id=payer_id,
            group_id=group_id,
            shares=shares_from_split(split),
            split_method=policy.method,
        )
        if expense_date is not None:
            fields["expense_date"] = expense_date
        if expense_id is not None:
            fields["id"] = expense_id

        return Expense(**fields)

    async def add_expense(
        self,
        total: Money,
        policy: SplitPolicy,
        participants: Sequence[str],
        payer_id: str,
        group_id: Optional[str] = None,
        name: str = "",
        category: Category = Category.OTHER,
        expense_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Expense, list[Debt]]:
        """
        Split an expense and record it in one step.

        Returns:
            (expense, debts_created)
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            expense = self.build_expense(
                total=total,
                policy=policy,
                participants=participants,
                payer_id=payer_id,
                group_id=group_id,
                name=name,
                category=category,
                expense_date=expense_date,
            )
        except InvalidSplitError as e:
            if self._audit_logger:
                await self._audit_logger.log_split_rejected(
                    reason=str(e),
                    group_id=group_id,
                    correlation_id=correlation_id,
                )
            raise

        debts = await self.record_expense(expense, correlation_id=correlation_id)
        return expense, debts

    async def remove_expense(
        self,
        expense_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete an expense and all of its debts.

        Raises:
            NotFoundError: If the expense doesn't exist
        """
        correlation_id = correlation_id or create_correlation_id()

        expense = await self._storage.get_expense(expense_id)
        if expense is None:
            raise NotFoundError(f"Expense {expense_id} not found")

        async with self._lock_for(expense.group_id):
            try:
                async with self._storage.transaction():
                    removed = await self._ledger.remove_expense(expense_id)
                    await self._commit()
            except ConnectionError as e:
                await self._audit_storage_failure("remove_expense", e, expense.group_id, correlation_id)
                raise

        if self._audit_logger:
            await self._audit_logger.log_expense_removed(
                expense_id=expense_id,
                group_id=expense.group_id,
                removed_debts=removed,
                correlation_id=correlation_id,
            )

    async def replace_expense(
        self,
        expense: Expense,
        correlation_id: Optional[UUID] = None,
    ) -> list[Debt]:
        """
        Apply an edit: delete the old debts and create new ones.

        Either both happen or neither does.

        Raises:
            NotFoundError: If the expense was never recorded
        """
        correlation_id = correlation_id or create_correlation_id()

        existing = await self._storage.get_expense(expense.id)
        if existing is None:
            raise NotFoundError(f"Expense {expense.id} not found")

        # Moving an expense between groups touches both ledgers
        group_ids = sorted({existing.group_id or STANDALONE, expense.group_id or STANDALONE})
        locks = [self._lock_for(group_id) for group_id in group_ids]

        for lock in locks:
            await lock.acquire()
        try:
            try:
                async with self._storage.transaction():
                    debts = await self._ledger.replace_expense(expense)
                    await self._commit()
            except InvalidSplitError as e:
                if self._audit_logger:
                    await self._audit_logger.log_split_rejected(
                        reason=str(e),
                        group_id=expense.group_id,
                        correlation_id=correlation_id,
                    )
                raise
            except ConnectionError as e:
                await self._audit_storage_failure("replace_expense", e, expense.group_id, correlation_id)
                raise
        finally:
            for lock in reversed(locks):
                lock.release()

        if self._audit_logger:
            await self._audit_logger.log_expense_replaced(
                expense_id=expense.id,
                group_id=expense.group_id,
                debt_count=len(debts),
                correlation_id=correlation_id,
            )
        return debts

    # -------------------------------------------------------------------------
    # Balances
    # -------------------------------------------------------------------------

    async def _net_balances_unlocked(
        self,
        group_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> dict[str, Money]:
        try:
            return await self._ledger.net_balances(group_id)
        except UnbalancedLedgerError as e:
            if self._audit_logger:
                await self._audit_logger.log_ledger_unbalanced(
                    group_id=group_id,
                    imbalance=str(e.imbalance),
                    correlation_id=correlation_id,
                )
            raise

    async def net_balances(self, group_id: str) -> dict[str, Money]:
        """
        Signed balance of every member: positive is owed, negative owes.

        Raises:
            NotFoundError: If the group doesn't exist
            UnbalancedLedgerError: If the balances do not sum to zero
        """
        async with self._lock_for(group_id):
            return await self._net_balances_unlocked(group_id)

    async def simplify(self, group_id: str) -> list[SimplifiedTransfer]:
        """
        The transfers that would settle the whole group.

        Recomputed on every call from the current unsettled debts.
        """
        async with self._lock_for(group_id):
            balances = await self._net_balances_unlocked(group_id)
        return simplify_balances(balances)

    async def list_debts(
        self,
        group_id: str,
        include_settled: bool = False,
    ) -> list[Debt]:
        """Debts of a group, oldest first."""
        async with self._lock_for(group_id):
            return await self._ledger.list_debts(group_id, include_settled=include_settled)

    # -------------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------------

    async def settle(
        self,
        debt_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Debt:
        """
        Mark a single debt as paid.

        Raises:
            NotFoundError: If the debt doesn't exist
        """
        correlation_id = correlation_id or create_correlation_id()

        debt = await self._storage.get_debt(debt_id)
        if debt is None:
            raise NotFoundError(f"Debt {debt_id} not found")

        async with self._lock_for(debt.group_id):
            try:
                async with self._storage.transaction():
                    settled = await self._recorder.settle(debt_id)
                    await self._commit()
            except ConnectionError as e:
                await self._audit_storage_failure("settle", e, debt.group_id, correlation_id)
                raise

        if self._audit_logger and not debt.settled:
            await self._audit_logger.log_debt_settled(
                debt_id=debt_id,
                group_id=debt.group_id,
                amount=str(debt.amount),
                correlation_id=correlation_id,
            )
        return settled

    async def settle_transfer(
        self,
        transfer: SimplifiedTransfer,
        group_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> list[Debt]:
        """
        Record that a simplified transfer was paid.

        Returns:
            Every debt the settlement wrote

        Raises:
            NotFoundError: If the group doesn't exist
            InvalidSettlementError: If the transfer exceeds what is owed
        """
        correlation_id = correlation_id or create_correlation_id()

        async with self._lock_for(group_id):
            await self._ledger.get_group(group_id)
            try:
                async with self._storage.transaction():
                    affected = await self._recorder.settle_transfer(transfer, group_id)
                    await self._commit()
            except InvalidSettlementError as e:
                if self._audit_logger:
                    await self._audit_logger.log_settlement_rejected(
                        reason=str(e),
                        group_id=group_id,
                        correlation_id=correlation_id,
                    )
                raise
            except ConnectionError as e:
                await self._audit_storage_failure("settle_transfer", e, group_id, correlation_id)
                raise

        if self._audit_logger:
            await self._audit_logger.log_transfer_settled(
                from_user=transfer.from_user,
                to_user=transfer.to_user,
                amount=str(transfer.amount),
                group_id=group_id,
                affected_debts=[str(debt.id) for debt in affected],
                correlation_id=correlation_id,
            )
        return affected


def create_app_components(
    storage: Optional[LedgerStorageInterface] = None,
) -> tuple[GroupLedgerService, AuditLogger]:
    """
    Factory function to create the ledger service.

    Args:
        storage: Ledger storage backend. Defaults to in-memory storage,
                 which is what tests and one-off scripts use.

    Returns:
        (service, audit_logger)
    """
    storage = storage or InMemoryLedgerStorage()
    audit_logger = AuditLogger(InMemoryAuditStorage())

    service = GroupLedgerService(
        storage=storage,
        audit_logger=audit_logger,
    )
    logger.info("ledger_service_created", storage=type(storage).__name__)

    return service, audit_logger
