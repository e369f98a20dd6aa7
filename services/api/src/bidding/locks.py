"""
Per-key synchronisation primitives.

- ``KeyedLocks``: one ``asyncio.Lock`` per item, serialising
  read-floor → validate → append for that item only.
- ``AdmissionGate``: per-auction shared/exclusive lock. Bid admissions hold
  it shared; lifecycle transitions hold it exclusive, so a close waits for
  in-flight admissions to drain and blocks new ones until it has landed.

Both registries hold their entries weakly: an entry lives as long as some
coroutine is using it, so idle auctions and items cost nothing.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLocks:
    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._get(key)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


class AdmissionGate:
    """Writer-preferring readers/writer lock for one auction.

    Process-local: it orders transitions against admissions made by this
    process only. See ``CouchbaseLedger`` for the multi-process caveat.
    """

    def __init__(self):
        self._cond = asyncio.Condition()
        self._active_shared = 0
        self._exclusive = False
        self._exclusive_waiting = 0

    @property
    def in_flight(self) -> int:
        return self._active_shared

    @asynccontextmanager
    async def shared(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(
                lambda: not self._exclusive and self._exclusive_waiting == 0
            )
            self._active_shared += 1
        try:
            yield
        finally:
            async with self._cond:
                self._active_shared -= 1
                if self._active_shared == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        async with self._cond:
            self._exclusive_waiting += 1
            try:
                await self._cond.wait_for(
                    lambda: not self._exclusive and self._active_shared == 0
                )
            finally:
                self._exclusive_waiting -= 1
                # Wake admissions held back by this writer if it gave up
                self._cond.notify_all()
            self._exclusive = True
        try:
            yield
        finally:
            async with self._cond:
                self._exclusive = False
                self._cond.notify_all()


class AdmissionGates:
    def __init__(self):
        self._gates: "weakref.WeakValueDictionary[str, AdmissionGate]" = weakref.WeakValueDictionary()

    def get(self, auction_id: str) -> AdmissionGate:
        gate = self._gates.get(auction_id)
        if gate is None:
            gate = AdmissionGate()
            self._gates[auction_id] = gate
        return gate

    @asynccontextmanager
    async def shared(self, auction_id: str) -> AsyncIterator[None]:
        gate = self.get(auction_id)
        async with gate.shared():
            yield

    @asynccontextmanager
    async def exclusive(self, auction_id: str) -> AsyncIterator[None]:
        gate = self.get(auction_id)
        async with gate.exclusive():
            yield
