"""
Tests for the in-memory storage transactions.
"""

import asyncio
import pytest

from groupledger.models import User


class TestTransactions:
    """Tests for rollback and isolation of writers."""

    @pytest.mark.asyncio
    async def test_rollback_on_error(self, storage):
        """Test that a failed transaction leaves no writes behind."""
        with pytest.raises(RuntimeError):
            async with storage.transaction():
                await storage.save_user(User(id="x", name="X"))
                raise RuntimeError("boom")

        assert await storage.get_user("x") is None

    @pytest.mark.asyncio
    async def test_nested_transaction_joins_outer(self, storage):
        """Test that an outer failure undoes a completed inner block."""
        with pytest.raises(RuntimeError):
            async with storage.transaction():
                async with storage.transaction():
                    await storage.save_user(User(id="x", name="X"))
                raise RuntimeError("boom")

        assert await storage.get_user("x") is None

    @pytest.mark.asyncio
    async def test_failed_writer_keeps_concurrent_writer(self, storage):
        """Test that one task's rollback never removes another task's writes."""
        started = asyncio.Event()

        async def failing_writer():
            with pytest.raises(RuntimeError):
                async with storage.transaction():
                    await storage.save_user(User(id="x", name="X"))
                    started.set()
                    await asyncio.sleep(0.01)
                    raise RuntimeError("boom")

        async def other_writer():
            await started.wait()
            async with storage.transaction():
                await storage.save_user(User(id="y", name="Y"))

        await asyncio.gather(failing_writer(), other_writer())

        assert await storage.get_user("x") is None
        assert await storage.get_user("y") is not None

    @pytest.mark.asyncio
    async def test_failed_second_writer_rolled_back(self, storage):
        """Test that a writer failing while another is open is still rolled back."""
        started = asyncio.Event()

        async def slow_writer():
            async with storage.transaction():
                await storage.save_user(User(id="x", name="X"))
                started.set()
                await asyncio.sleep(0.01)

        async def failing_writer():
            await started.wait()
            with pytest.raises(RuntimeError):
                async with storage.transaction():
                    await storage.save_user(User(id="y", name="Y"))
                    raise RuntimeError("boom")

        await asyncio.gather(slow_writer(), failing_writer())

        assert await storage.get_user("x") is not None
        assert await storage.get_user("y") is None
