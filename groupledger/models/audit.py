"""
Audit Models for the Group Ledger

Every mutation of the ledger is logged for audit purposes.
This provides:
1. Complete traceability of who owes what and why
2. Debugging information when balances look wrong
3. Ability to reconstruct how a debt was settled or re-routed

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from groupledger.models.ledger import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Each ledger operation has its own event type.
    """
    # Expenses
    EXPENSE_RECORDED = "expense_recorded"
    EXPENSE_REMOVED = "expense_removed"
    EXPENSE_REPLACED = "expense_replaced"
    SPLIT_REJECTED = "split_rejected"

    # Settlement
    DEBT_SETTLED = "debt_settled"
    TRANSFER_SETTLED = "transfer_settled"
    SETTLEMENT_REJECTED = "settlement_rejected"

    # Invariants
    LEDGER_UNBALANCED = "ledger_unbalanced"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'debt', 'transfer')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    group_id: Optional[str] = Field(
        default=None,
        description="Group whose ledger was touched"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one edit)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "group_id": self.group_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_recorded(expense_id, group_id, ...)
        event = AuditEventBuilder.debt_settled(debt_id, group_id, correlation_id)
    """

    @staticmethod
    def expense_recorded(
        expense_id: UUID,
        group_id: Optional[str],
        amount: str,
        debt_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_RECORDED,
            entity_type="expense",
            entity_id=str(expense_id),
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"Expense recorded: {amount} creating {debt_count} debts",
            details={
                "amount": amount,
                "debt_count": debt_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_removed(
        expense_id: UUID,
        group_id: Optional[str],
        removed_debts: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_REMOVED,
            entity_type="expense",
            entity_id=str(expense_id),
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"Expense removed along with {removed_debts} debts",
            details={
                "removed_debts": removed_debts,
            },
            is_user_action=True,
        )

    @staticmethod
    def expense_replaced(
        expense_id: UUID,
        group_id: Optional[str],
        debt_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_REPLACED,
            entity_type="expense",
            entity_id=str(expense_id),
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"Expense edited; debts recreated ({debt_count})",
            details={
                "debt_count": debt_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def split_rejected(
        reason: str,
        group_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPLIT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="expense",
            group_id=group_id,
            correlation_id=correlation_id,
            description="Split rejected: shares do not reconcile",
            error_message=reason,
        )

    @staticmethod
    def debt_settled(
        debt_id: UUID,
        group_id: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_SETTLED,
            entity_type="debt",
            entity_id=str(debt_id),
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"Debt settled: {amount}",
            details={
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def transfer_settled(
        from_user: str,
        to_user: str,
        amount: str,
        group_id: str,
        affected_debts: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_SETTLED,
            entity_type="transfer",
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"Transfer settled: {from_user} paid {to_user} {amount}",
            details={
                "from_user": from_user,
                "to_user": to_user,
                "amount": amount,
                "affected_debts": affected_debts,
            },
            is_user_action=True,
        )

    @staticmethod
    def settlement_rejected(
        reason: str,
        group_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="transfer",
            group_id=group_id,
            correlation_id=correlation_id,
            description="Settlement rejected",
            error_message=reason,
        )

    @staticmethod
    def ledger_unbalanced(
        group_id: str,
        imbalance: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_UNBALANCED,
            severity=AuditSeverity.CRITICAL,
            entity_type="group",
            entity_id=group_id,
            group_id=group_id,
            correlation_id=correlation_id,
            description=f"Net balances do not sum to zero (off by {imbalance})",
            details={
                "imbalance": imbalance,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        group_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            group_id=group_id,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={
                "operation": operation,
            },
            correlation_id=correlation_id,
        )
