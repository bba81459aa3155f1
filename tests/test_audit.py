"""
Tests for the audit logger.
"""

import pytest
from uuid import uuid4

from groupledger.audit import AuditLogger, create_correlation_id
from groupledger.models import AuditEventBuilder, AuditEventType
from groupledger.services.storage import InMemoryAuditStorage


class FailingAuditStorage(InMemoryAuditStorage):
    async def append_event(self, event):
        raise RuntimeError("audit sink down")


class TestAuditLogger:
    """Tests for AuditLogger persistence behaviour."""

    @pytest.mark.asyncio
    async def test_events_persisted_with_correlation(self):
        """Test that related events can be found by correlation id."""
        storage = InMemoryAuditStorage()
        audit_logger = AuditLogger(storage)
        correlation_id = create_correlation_id()
        expense_id = uuid4()

        await audit_logger.log_expense_recorded(
            expense_id=expense_id,
            group_id="trip",
            amount="30.00 USD",
            debt_count=2,
            correlation_id=correlation_id,
        )
        await audit_logger.log_debt_settled(
            debt_id=uuid4(),
            group_id="trip",
            amount="10.00 USD",
            correlation_id=correlation_id,
        )
        await audit_logger.log_error("unexpected", "boom")

        related = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in related] == [
            AuditEventType.EXPENSE_RECORDED,
            AuditEventType.DEBT_SETTLED,
        ]

        by_entity = await storage.get_events_by_entity("expense", str(expense_id))
        assert len(by_entity) == 1

    @pytest.mark.asyncio
    async def test_storage_failure_not_raised(self):
        """Test that a failing audit sink never breaks the caller."""
        audit_logger = AuditLogger(FailingAuditStorage())

        await audit_logger.log_split_rejected(reason="does not add up", group_id="trip")

    @pytest.mark.asyncio
    async def test_without_storage(self):
        """Test that logging works with no storage configured."""
        audit_logger = AuditLogger()

        ok = await audit_logger.log(AuditEventBuilder.storage_error("commit", "timeout"))

        assert ok is True
