"""Per-pair serialization for relationship writes."""

import threading
import zlib
from contextlib import contextmanager
from typing import Iterator, Optional, Tuple
from weakref import WeakValueDictionary

from sqlalchemy import text
from sqlalchemy.orm import Session


def pair_key(a: int, b: int) -> Tuple[int, int]:
    """Unordered pair identity: (smaller id, larger id)."""
    return (a, b) if a < b else (b, a)


def advisory_key(a: int, b: int) -> int:
    """Signed 64-bit key for pg_advisory_xact_lock derived from the pair."""
    low, high = pair_key(a, b)
    value = (zlib.crc32(f"{low}:{high}".encode("ascii")) << 32) | zlib.crc32(f"{high}:{low}".encode("ascii"))
    return value - (1 << 64) if value >= (1 << 63) else value


class _PairLock:
    # _thread.lock cannot be weakly referenced, so wrap it.
    __slots__ = ("lock", "__weakref__")

    def __init__(self):
        self.lock = threading.Lock()


class PairLocks:
    """
    One lock per unordered user pair.

    Locks are held weakly so the registry does not grow with every pair that
    ever interacted. When a session is given, the section commits before the
    lock is released, so the next writer on the pair always reads the
    previous writer's result. On PostgreSQL a transaction-scoped advisory lock
    is taken as well, so writers in other processes serialize on the same pair.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: "WeakValueDictionary[Tuple[int, int], _PairLock]" = WeakValueDictionary()

    def _lock_for(self, key: Tuple[int, int]) -> _PairLock:
        with self._guard:
            holder = self._locks.get(key)
            if holder is None:
                holder = _PairLock()
                self._locks[key] = holder
            return holder

    def __len__(self) -> int:
        return len(self._locks)

    @contextmanager
    def hold(self, a: int, b: int, db: Optional[Session] = None) -> Iterator[None]:
        """Serialize a write on the pair ``(a, b)``.

        With a session, the whole session is committed on success and rolled
        back on any exception, including work the caller flushed before
        entering. Commit earlier changes first if they must survive a
        rejected transition.
        """
        holder = self._lock_for(pair_key(a, b))
        with holder.lock:
            if db is None:
                yield
                return
            if db.get_bind().dialect.name == "postgresql":
                db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": advisory_key(a, b)})
            try:
                yield
            except Exception:
                db.rollback()
                raise
            db.commit()


# Global registry shared by every relationship writer in this process
pair_locks = PairLocks()
