"""Query execution package."""

from groupledger.queries.executor import ExpenseQueryExecutor, QueryExecutionError

__all__ = ["ExpenseQueryExecutor", "QueryExecutionError"]
