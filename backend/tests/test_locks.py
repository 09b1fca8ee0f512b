"""
Tests for KeyedLock
===================
Covers:
- Same key -> same lock while it is in use; different keys -> different locks
- Waiters on one key run one at a time
- Idle locks drop out of the map

Run: pytest tests/test_locks.py -v
"""

import asyncio
import gc

import pytest

from artemis.services.locks import KeyedLock


class TestKeyedLock:

    def test_same_key_same_lock(self):
        locks = KeyedLock()
        lock = locks(("user-1", "whoop"))

        assert locks(("user-1", "whoop")) is lock
        assert locks(("user-1", "oura")) is not lock

    @pytest.mark.asyncio
    async def test_serialises_one_key(self):
        locks = KeyedLock()
        order = []

        async def critical(name):
            async with locks("key"):
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        await asyncio.gather(critical("a"), critical("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_idle_locks_are_dropped(self):
        locks = KeyedLock()
        for user in range(100):
            async with locks((f"user-{user}", "fitbit")):
                pass

        gc.collect()

        assert len(locks._locks) == 0
