"""
Audit Logger

DESIGN DECISION: Every ledger mutation is logged.
This provides:
1. Complete traceability of debts and settlements
2. Debugging capability when balances look wrong
3. A history users can inspect ("who settled this?")

The audit logger:
- Is async so a slow audit backend does not block the ledger
- Gracefully handles storage failures (a failed audit write never
  undoes a committed ledger change)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from groupledger.models.audit import AuditEvent, AuditEventBuilder
from groupledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, if one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_expense_recorded(
        self,
        expense_id: UUID,
        group_id: Optional[str],
        amount: str,
        debt_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a newly recorded expense."""
        await self.log(AuditEventBuilder.expense_recorded(
            expense_id=expense_id,
            group_id=group_id,
            amount=amount,
            debt_count=debt_count,
            correlation_id=correlation_id,
        ))

    async def log_expense_removed(
        self,
        expense_id: UUID,
        group_id: Optional[str],
        removed_debts: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an expense deletion."""
        await self.log(AuditEventBuilder.expense_removed(
            expense_id=expense_id,
            group_id=group_id,
            removed_debts=removed_debts,
            correlation_id=correlation_id,
        ))

    async def log_expense_replaced(
        self,
        expense_id: UUID,
        group_id: Optional[str],
        debt_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an expense edit."""
        await self.log(AuditEventBuilder.expense_replaced(
            expense_id=expense_id,
            group_id=group_id,
            debt_count=debt_count,
            correlation_id=correlation_id,
        ))

    async def log_split_rejected(
        self,
        reason: str,
        group_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.split_rejected(
            reason=reason,
            group_id=group_id,
            correlation_id=correlation_id,
        ))

    async def log_debt_settled(
        self,
        debt_id: UUID,
        group_id: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.debt_settled(
            debt_id=debt_id,
            group_id=group_id,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_transfer_settled(
        self,
        from_user: str,
        to_user: str,
        amount: str,
        group_id: str,
        affected_debts: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transfer_settled(
            from_user=from_user,
            to_user=to_user,
            amount=amount,
            group_id=group_id,
            affected_debts=affected_debts,
            correlation_id=correlation_id,
        ))

    async def log_settlement_rejected(
        self,
        reason: str,
        group_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.settlement_rejected(
            reason=reason,
            group_id=group_id,
            correlation_id=correlation_id,
        ))

    async def log_ledger_unbalanced(
        self,
        group_id: str,
        imbalance: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a conservation failure. This always indicates a bug."""
        await self.log(AuditEventBuilder.ledger_unbalanced(
            group_id=group_id,
            imbalance=imbalance,
            correlation_id=correlation_id,
        ))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        group_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            group_id=group_id,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., saving an expense).
    Pass it through all subsequent operations.
    """
    return uuid4()
