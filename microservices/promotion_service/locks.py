"""
In-process keyed locks

Serializes ledger operations that touch the same campaign, listing or
wallet. Unrelated keys never wait on each other. Row locks in the store
cover the cross-process case.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, Optional


class KeyedLock:
    """A lazily created asyncio.Lock per key, dropped when unused"""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, *keys: Optional[str]) -> AsyncIterator[None]:
        # Sorted acquisition order prevents deadlock between multi-key holders
        ordered = sorted({k for k in keys if k})
        acquired = []
        try:
            for key in ordered:
                lock = self._locks.setdefault(key, asyncio.Lock())
                self._waiters[key] = self._waiters.get(key, 0) + 1
                try:
                    await lock.acquire()
                except BaseException:
                    self._release_ref(key)
                    raise
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
                self._release_ref(key)

    def _release_ref(self, key: str) -> None:
        self._waiters[key] -= 1
        if self._waiters[key] == 0:
            del self._waiters[key]
            del self._locks[key]

    def active_keys(self) -> Iterable[str]:
        return list(self._locks)


def campaign_key(campaign_id: str) -> str:
    return f"campaign:{campaign_id}"


def listing_key(listing_id: Optional[str]) -> Optional[str]:
    return f"listing:{listing_id}" if listing_id else None


def wallet_key(user_id: str) -> str:
    return f"wallet:{user_id}"
