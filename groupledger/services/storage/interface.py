"""
Abstract Storage Interface

DESIGN DECISION: The ledger never talks to a database directly. It is
handed an object implementing this interface. This allows us to:
1. Keep ledger logic decoupled from any persistence technology
2. Use in-memory storage for testing
3. Make every multi-record write atomic through transaction()

The interface is intentionally small - only the operations the ledger needs.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
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


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (in-memory, SQLite, PostgreSQL, etc.)
    must implement these methods.
    """

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager:
        """
        Open a unit of work.

        Usage:
            async with storage.transaction():
                await storage.delete_debts_for_expense(expense_id)
                await storage.add_debts(new_debts)

        If the block raises, every write made inside it is rolled back
        and the exception propagates. Otherwise the writes are committed.
        """
        pass

    @abstractmethod
    async def commit(self) -> None:
        """
        Make pending writes durable.

        Raises:
            ConnectionError: If the backend is temporarily unreachable
        """
        pass

    # -------------------------------------------------------------------------
    # Users and groups
    # -------------------------------------------------------------------------

    @abstractmethod
    async def save_user(self, user: User) -> None:
        """Insert or replace a user."""
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        """Return the user, or None if unknown."""
        pass

    @abstractmethod
    async def save_group(self, group: Group) -> None:
        """Insert or replace a group."""
        pass

    @abstractmethod
    async def get_group(self, group_id: str) -> Optional[Group]:
        """Return the group, or None if unknown."""
        pass

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    @abstractmethod
    async def add_expense(self, expense: Expense) -> None:
        """
        Insert a new expense.

        Raises:
            DuplicateError: If an expense with the same id exists
        """
        pass

    @abstractmethod
    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        """Return the expense, or None if unknown."""
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: UUID) -> bool:
        """
        Delete an expense.

        Returns:
            True if it existed
        """
        pass

    @abstractmethod
    async def list_expenses(
        self,
        group_id: Optional[str] = None,
        categories: Optional[list[Category]] = None,
        is_group_expense: Optional[bool] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Expense]:
        """
        List expenses with optional filters, newest first.

        Args:
            group_id: Only expenses of this group
            categories: Only expenses in one of these categories
            is_group_expense: True for shared expenses, False for standalone
            date_from: Expenses on or after this date
            date_to: Expenses on or before this date
        """
        pass

    # -------------------------------------------------------------------------
    # Debts
    # -------------------------------------------------------------------------

    @abstractmethod
    async def add_debts(self, debts: list[Debt]) -> None:
        """Insert new debts, preserving their order."""
        pass

    @abstractmethod
    async def get_debt(self, debt_id: UUID) -> Optional[Debt]:
        """Return the debt, or None if unknown."""
        pass

    @abstractmethod
    async def update_debt(self, debt: Debt) -> None:
        """
        Replace a stored debt.

        Raises:
            NotFoundError: If the debt doesn't exist
        """
        pass

    @abstractmethod
    async def delete_debts_for_expense(self, expense_id: UUID) -> int:
        """
        Delete every debt created from an expense, settled or not.

        Returns:
            Number of debts deleted
        """
        pass

    @abstractmethod
    async def list_debts(
        self,
        group_id: str,
        include_settled: bool = False,
    ) -> list[Debt]:
        """
        List debts of a group, oldest first.

        Debts with the same created_at keep their insertion order.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one expense edit).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
