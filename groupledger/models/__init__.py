"""
Data Models Package

This package contains all Pydantic models used by the group ledger.
All data flowing through the ledger must conform to these schemas.
"""

from groupledger.models.money import (
    CurrencyMismatchError,
    Money,
    total_of,
)
from groupledger.models.ledger import (
    AmountSplit,
    Category,
    Debt,
    EqualSplit,
    Expense,
    Group,
    PercentSplit,
    Share,
    SimplifiedTransfer,
    SplitMethod,
    SplitPolicy,
    User,
)
from groupledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from groupledger.models.query import ExpenseQuery, QueryResult

__all__ = [
    # Money
    "CurrencyMismatchError",
    "Money",
    "total_of",
    # Ledger models
    "AmountSplit",
    "Category",
    "Debt",
    "EqualSplit",
    "Expense",
    "Group",
    "PercentSplit",
    "Share",
    "SimplifiedTransfer",
    "SplitMethod",
    "SplitPolicy",
    "User",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Query models
    "ExpenseQuery",
    "QueryResult",
]
