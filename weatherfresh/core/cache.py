"""
weatherfresh/core/cache.py
═══════════════════════════════════════════════════════════════════════════
Bounded, TTL-aware, LRU in-memory cache for weather lookups.
  • Keys are city names, case-folded and stripped once at every entry point
  • Capacity is hard: put() evicts from the LRU end until size <= capacity
  • Expiry is lazy: an entry older than ttl is dropped when get() sees it,
    there is no background sweep (never-read entries can stay stale)
  • Recency order lives in an arena of slots linked by integer indices,
    head = least recently used, tail = most recently used
  • Structure guarded by an RWLock; index and order always change together
    under the write lock
═══════════════════════════════════════════════════════════════════════════
"""

import logging
import time
from typing import Any, Callable, Optional

from weatherfresh.core.errors import ConfigError
from weatherfresh.core.rwlock import RWLock

log = logging.getLogger("cache")

_NIL = -1


def normalize(key: Optional[str]) -> Optional[str]:
    """'  London ' → 'london'. Blank or None → None."""
    if key is None:
        return None
    k = key.strip().casefold()
    return k or None


class _Slot:
    __slots__ = ("key", "value", "written", "prev", "next")

    def __init__(self, key: str, value: Any, written: float) -> None:
        self.key     = key
        self.value   = value
        self.written = written
        self.prev    = _NIL
        self.next    = _NIL


class BoundedFreshCache:
    def __init__(
        self,
        capacity: int,
        ttl_seconds: float,
        time_func: Callable[[], float] = time.time,
    ) -> None:
        if capacity is None or capacity <= 0:
            raise ConfigError(f"capacity must be positive, got {capacity!r}")
        if ttl_seconds is None or ttl_seconds <= 0:
            raise ConfigError(f"ttl_seconds must be positive, got {ttl_seconds!r}")
        self._capacity = capacity
        self._ttl      = ttl_seconds
        self._now      = time_func
        self._lock     = RWLock()

        self._index: dict[str, int]            = {}
        self._slots: list[Optional[_Slot]]     = []
        self._free:  list[int]                 = []
        self._head   = _NIL
        self._tail   = _NIL

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def ttl(self) -> float:
        return self._ttl

    # ── Public API ────────────────────────────────────────────────────────────

    def put(self, key: Optional[str], value: Any) -> None:
        """Insert or overwrite. Blank key or None value is ignored."""
        k = normalize(key)
        if k is None or value is None:
            return

        with self._lock.write():
            now = self._now()
            i = self._index.get(k)
            if i is not None:
                slot = self._slots[i]
                slot.value   = value
                slot.written = now
                self._unlink(i)
                self._link_tail(i)
                return

            self._index[k] = self._alloc(k, value, now)
            while len(self._index) > self._capacity and self._head != _NIL:
                victim = self._slots[self._head].key
                self._remove(self._head)
                log.debug(f"Evicted '{victim}' (capacity {self._capacity})")

    def get(self, key: Optional[str]) -> Any:
        """Fresh value for key, or None. Hits move to MRU, expired hits are dropped."""
        k = normalize(key)
        if k is None:
            return None

        with self._lock.read():
            if k not in self._index:
                return None

        # Presence was checked under the read lock; the entry may be gone by
        # the time the write lock is held, so look it up again.
        with self._lock.write():
            i = self._index.get(k)
            if i is None:
                return None
            slot = self._slots[i]
            if self._now() - slot.written > self._ttl:
                self._remove(i)
                log.debug(f"Expired '{k}' on read")
                return None
            self._unlink(i)
            self._link_tail(i)
            return slot.value

    def keys(self) -> list[str]:
        """Resident keys, least → most recently used."""
        with self._lock.read():
            out = []
            i = self._head
            while i != _NIL:
                slot = self._slots[i]
                out.append(slot.key)
                i = slot.next
            return out

    def summary(self) -> dict:
        """Metadata only — safe to expose in /health. Does not touch recency."""
        with self._lock.read():
            now = self._now()
            out = {}
            i = self._head
            while i != _NIL:
                slot = self._slots[i]
                out[slot.key] = {"age_s": round(now - slot.written, 1)}
                i = slot.next
            return out

    def clear(self) -> None:
        with self._lock.write():
            self._index.clear()
            self._slots.clear()
            self._free.clear()
            self._head = self._tail = _NIL

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._index)

    # ── Arena / ordering (caller holds the write lock) ───────────────────────

    def _alloc(self, key: str, value: Any, written: float) -> int:
        slot = _Slot(key, value, written)
        if self._free:
            i = self._free.pop()
            self._slots[i] = slot
        else:
            i = len(self._slots)
            self._slots.append(slot)
        self._link_tail(i)
        return i

    def _remove(self, i: int) -> None:
        slot = self._slots[i]
        self._unlink(i)
        del self._index[slot.key]
        self._slots[i] = None
        self._free.append(i)

    def _link_tail(self, i: int) -> None:
        slot = self._slots[i]
        slot.prev = self._tail
        slot.next = _NIL
        if self._tail != _NIL:
            self._slots[self._tail].next = i
        else:
            self._head = i
        self._tail = i

    def _unlink(self, i: int) -> None:
        slot = self._slots[i]
        if slot.prev != _NIL:
            self._slots[slot.prev].next = slot.next
        else:
            self._head = slot.next
        if slot.next != _NIL:
            self._slots[slot.next].prev = slot.prev
        else:
            self._tail = slot.prev
        slot.prev = slot.next = _NIL
