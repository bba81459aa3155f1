"""
Query Execution Engine

Reads expenses back out of storage for listings and summaries:
- filtered expense lists (category, name search, group, date range)
- totals per category
- total spent by a group

DESIGN DECISION: Listing and summary queries never raise to the caller.
Failures are reported in the QueryResult so a listing screen can show a
message instead of crashing.
"""

from typing import Optional

import structlog

from groupledger.models.ledger import Category, Expense
from groupledger.models.money import CurrencyMismatchError, Money, total_of
from groupledger.models.query import ExpenseQuery, QueryResult
from groupledger.services.storage import LedgerStorageInterface


logger = structlog.get_logger(__name__)


class QueryExecutionError(Exception):
    """Error during query execution."""
    pass


class ExpenseQueryExecutor:
    """
    Executes expense queries against ledger storage.

    GUARANTEES:
    - Only returns data that is actually stored
    - Amounts are summed exactly, in minor units
    - Clear "no data found" if nothing matches
    """

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def _fetch(self, query: ExpenseQuery) -> list[Expense]:
        expenses = await self._storage.list_expenses(
            group_id=query.group_id,
            categories=query.categories or None,
            is_group_expense=query.is_group_expense,
            date_from=query.date_from,
            date_to=query.date_to,
        )

        if query.search_text:
            needle = query.search_text.lower()
            expenses = [e for e in expenses if needle in e.name.lower()]

        return expenses

    def _describe(self, prefix: str, query: ExpenseQuery) -> str:
        desc_parts = [prefix]
        if query.categories:
            desc_parts.append("categories: " + ", ".join(c.value for c in query.categories))
        if query.search_text:
            desc_parts.append(f"name contains: {query.search_text}")
        if query.group_id:
            desc_parts.append(f"group: {query.group_id}")
        if query.is_group_expense is not None:
            desc_parts.append("shared only" if query.is_group_expense else "personal only")
        if query.date_from or query.date_to:
            desc_parts.append(self._date_range_str(query))
        return " | ".join(desc_parts)

    def _failed(self, query: ExpenseQuery, error: Exception) -> QueryResult:
        logger.error("query_failed", query_id=str(query.query_id), error=str(error))
        return QueryResult(
            query_id=query.query_id,
            success=False,
            error_message=str(error),
            data_found=False,
            result_count=0,
            query_description=f"Query failed: {error}",
        )

    async def list_expenses(self, query: ExpenseQuery) -> QueryResult:
        """List matching expenses, newest first."""
        try:
            expenses = await self._fetch(query)
        except Exception as e:
            return self._failed(query, e)

        results = [self._expense_to_dict(e) for e in expenses[:query.limit]]

        return QueryResult(
            query_id=query.query_id,
            success=True,
            data_found=len(results) > 0,
            result_count=len(results),
            results=results,
            query_description=self._describe("Listing expenses", query),
        )

    async def category_totals(self, query: ExpenseQuery) -> QueryResult:
        """
        Sum of expense amounts per category.

        Only categories with at least one matching expense appear.
        """
        try:
            expenses = await self._fetch(query)
        except Exception as e:
            return self._failed(query, e)

        totals = self.sum_by_category(expenses)

        return QueryResult(
            query_id=query.query_id,
            success=True,
            data_found=len(expenses) > 0,
            result_count=len(expenses),
            aggregation_result={
                "breakdown": {
                    category.value: str(amount.to_decimal())
                    for category, amount in totals.items()
                },
                "expense_count": len(expenses),
            },
            query_description=self._describe("Totals by category", query),
        )

    async def group_total(self, group_id: str, currency: Optional[str] = None) -> Money:
        """
        Total amount of every expense recorded in a group.

        Raises:
            QueryExecutionError: If the group's expenses mix currencies
        """
        expenses = await self._storage.list_expenses(group_id=group_id)
        if currency is None:
            currency = expenses[0].amount.currency if expenses else "USD"
        try:
            return total_of((e.amount for e in expenses), currency=currency)
        except CurrencyMismatchError as e:
            raise QueryExecutionError(f"Cannot total group {group_id}: {e}") from e

    @staticmethod
    def sum_by_category(expenses: list[Expense]) -> dict[Category, Money]:
        totals: dict[Category, Money] = {}
        for expense in expenses:
            current = totals.get(expense.category)
            totals[expense.category] = (
                expense.amount if current is None else current + expense.amount
            )
        return totals

    @staticmethod
    def _expense_to_dict(expense: Expense) -> dict:
        """Convert an expense to a plain dict."""
        return {
            "id": str(expense.id),
            "name": expense.name,
            "amount": str(expense.amount.to_decimal()),
            "currency": expense.amount.currency,
            "category": expense.category.value,
            "date": expense.expense_date.isoformat(),
            "payer_id": expense.payer_id,
            "group_id": expense.group_id,
            "participants": len(expense.shares),
        }

    @staticmethod
    def _date_range_str(query: ExpenseQuery) -> str:
        if query.date_from and query.date_to:
            return f"from {query.date_from} to {query.date_to}"
        elif query.date_from:
            return f"since {query.date_from}"
        else:
            return f"until {query.date_to}"
