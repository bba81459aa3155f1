"""
Shared fixtures.

Every test gets a fresh in-memory storage; nothing is shared between
tests and no external service is touched.
"""

from decimal import Decimal

import pytest
import pytest_asyncio

from groupledger.config import LedgerSettings
from groupledger.models import Group, User
from groupledger.services.storage import InMemoryLedgerStorage


MEMBERS = ("alice", "bob", "carol", "dave")


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def settings():
    """Ledger settings with no backoff between commit attempts."""
    return LedgerSettings(
        currency="USD",
        percent_tolerance=Decimal("0.01"),
        commit_max_attempts=3,
        commit_retry_multiplier=0,
        commit_retry_max_wait=0,
    )


@pytest_asyncio.fixture
async def group(storage):
    """A four-person group with every member registered."""
    for user_id in MEMBERS:
        await storage.save_user(User(id=user_id, name=user_id.capitalize()))

    group = Group(id="trip", name="Weekend trip", member_ids=MEMBERS)
    await storage.save_group(group)
    return group
