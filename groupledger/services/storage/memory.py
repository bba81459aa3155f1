"""
In-Memory Storage Implementation

DESIGN DECISION: The ledger core ships with an in-memory backend because:
1. Tests need a fast, deterministic store
2. Small tools (a CLI, a notebook) can run the ledger without a database
3. It documents the transactional contract concrete backends must honour

TRADEOFFS:
- Nothing is durable; commit() only records that a commit happened
- One transaction at a time: concurrent writers queue on a lock, so a
  rollback never discards another task's committed writes
- Nested transactions in the same task join the outermost one
- Reads outside a transaction are not isolated from a pending one
"""

import asyncio
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import date
from typing import Optional
from uuid import UUID

from groupledger.models.audit import AuditEvent
from groupledger.models.ledger import (
    Category,
    Debt,
    Expense,
    Group,
    User,
)
from groupledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
)

# Storages whose transaction the current task holds
_held_transactions: ContextVar[frozenset] = ContextVar("held_transactions", default=frozenset())


class InMemoryLedgerStorage(LedgerStorageInterface):
    """
    Dictionary-backed ledger storage.

    Records are immutable pydantic models, so a snapshot is a shallow
    copy of each table.
    """

    def __init__(self):
        self._users: dict[str, User] = {}
        self._groups: dict[str, Group] = {}
        self._expenses: dict[UUID, Expense] = {}
        self._debts: dict[UUID, Debt] = {}

        self._writer = asyncio.Lock()
        self.commit_count = 0

    def _take_snapshot(self) -> tuple:
        return (
            dict(self._users),
            dict(self._groups),
            dict(self._expenses),
            dict(self._debts),
        )

    def _restore(self, snapshot: tuple) -> None:
        self._users, self._groups, self._expenses, self._debts = snapshot

    @asynccontextmanager
    async def transaction(self):
        held = _held_transactions.get()
        if id(self) in held:
            # Nested: join the transaction this task already holds
            yield self
            return

        async with self._writer:
            snapshot = self._take_snapshot()
            token = _held_transactions.set(held | {id(self)})
            try:
                yield self
            except BaseException:
                self._restore(snapshot)
                raise
            finally:
                _held_transactions.reset(token)

    async def commit(self) -> None:
        self.commit_count += 1

    # -------------------------------------------------------------------------
    # Users and groups
    # -------------------------------------------------------------------------

    async def save_user(self, user: User) -> None:
        self._users[user.id] = user

    async def get_user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    async def save_group(self, group: Group) -> None:
        self._groups[group.id] = group

    async def get_group(self, group_id: str) -> Optional[Group]:
        return self._groups.get(group_id)

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def add_expense(self, expense: Expense) -> None:
        if expense.id in self._expenses:
            raise DuplicateError(f"Expense {expense.id} already exists")
        self._expenses[expense.id] = expense

    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        return self._expenses.get(expense_id)

    async def delete_expense(self, expense_id: UUID) -> bool:
        return self._expenses.pop(expense_id, None) is not None

    async def list_expenses(
        self,
        group_id: Optional[str] = None,
        categories: Optional[list[Category]] = None,
        is_group_expense: Optional[bool] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Expense]:
        results = []

        for expense in self._expenses.values():
            if group_id is not None and expense.group_id != group_id:
                continue
            if categories and expense.category not in categories:
                continue
            if is_group_expense is not None and expense.is_group_expense != is_group_expense:
                continue
            if date_from and expense.expense_date < date_from:
                continue
            if date_to and expense.expense_date > date_to:
                continue
            results.append(expense)

        results.sort(key=lambda e: (e.expense_date, e.created_at), reverse=True)
        return results

    # -------------------------------------------------------------------------
    # Debts
    # -------------------------------------------------------------------------

    async def add_debts(self, debts: list[Debt]) -> None:
        for debt in debts:
            if debt.id in self._debts:
                raise DuplicateError(f"Debt {debt.id} already exists")
            self._debts[debt.id] = debt

    async def get_debt(self, debt_id: UUID) -> Optional[Debt]:
        return self._debts.get(debt_id)

    async def update_debt(self, debt: Debt) -> None:
        if debt.id not in self._debts:
            raise NotFoundError(f"Debt {debt.id} not found")
        self._debts[debt.id] = debt

    async def delete_debts_for_expense(self, expense_id: UUID) -> int:
        doomed = [
            debt_id
            for debt_id, debt in self._debts.items()
            if debt.expense_id == expense_id
        ]
        for debt_id in doomed:
            del self._debts[debt_id]
        return len(doomed)

    async def list_debts(
        self,
        group_id: str,
        include_settled: bool = False,
    ) -> list[Debt]:
        debts = [
            debt
            for debt in self._debts.values()
            if debt.group_id == group_id and (include_settled or not debt.settled)
        ]
        # sort() is stable, so equal timestamps keep insertion order
        debts.sort(key=lambda d: d.created_at)
        return debts


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
