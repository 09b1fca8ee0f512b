"""
Keyed asyncio locks.

One lock per key, created on first use. Used to serialise token refreshes
and natural-key writes per (user, provider) inside a single process.

Entries are held weakly: a lock lives as long as someone is holding or
waiting on it, then drops out of the map.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import Hashable


class KeyedLock:
    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[Hashable, asyncio.Lock] = weakref.WeakValueDictionary()

    def __call__(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock
