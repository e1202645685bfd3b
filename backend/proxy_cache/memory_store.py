"""
Document Cache Implementation

Thread-safe in-memory storage for proxied HTML documents.

Features:
- Thread-safe operations with Lock
- TTL-based expiration (stale entries are treated as misses)
- Batch compaction when max entries exceeded
- Per-request bypass without invalidating the stored entry
"""

import time
from typing import Callable, Dict, Any, Optional, List
from dataclasses import dataclass
from threading import Lock
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60
DEFAULT_MAX_ENTRIES = 100
DEFAULT_TARGET_ENTRIES = 50


@dataclass(frozen=True)
class CachedDocument:
    """A transformed document and the moment it was captured."""
    key: str                         # Canonical source URL
    html: str                        # Transformed document
    timestamp: float                 # Unix timestamp when stored
    sequence: int = 0                # Insertion counter, breaks timestamp ties

    def age(self, now: float) -> float:
        """Seconds elapsed since capture"""
        return now - self.timestamp

    def is_expired(self, now: float, ttl: float) -> bool:
        """Check if this entry is stale at ``now``"""
        return self.age(now) >= ttl

    @property
    def created_at(self) -> str:
        """Get ISO format capture time"""
        return datetime.fromtimestamp(self.timestamp).isoformat()

    @property
    def size_bytes(self) -> int:
        return len(self.html.encode("utf-8"))

    def to_summary(self) -> Dict[str, Any]:
        """Metadata only, without the document body"""
        return {
            "url": self.key,
            "timestamp": self.timestamp,
            "created_at": self.created_at,
            "size_bytes": self.size_bytes,
        }


class DocumentCache:
    """
    Thread-safe, time-bounded document store.

    A hit requires the key to be present and younger than the TTL. When a
    ``put`` pushes the store above ``max_entries``, the oldest entries are
    removed in one sweep until ``target_entries`` remain. Insert and sweep
    happen under the same lock.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        target_entries: int = DEFAULT_TARGET_ENTRIES,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize document cache

        Args:
            ttl_seconds: Time-to-live of an entry
            max_entries: Entry count that triggers a compaction sweep
            target_entries: Entry count left after a sweep
            clock: Time source, injectable for tests
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if target_entries < 1:
            raise ValueError("target_entries must be at least 1")
        if target_entries > max_entries:
            raise ValueError("target_entries cannot exceed max_entries")

        self._store: Dict[str, CachedDocument] = {}
        self._lock = Lock()
        self._ttl = float(ttl_seconds)
        self._max_entries = max_entries
        self._target_entries = target_entries
        self._clock = clock
        self._sequence = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: str, bypass: bool = False) -> Optional[CachedDocument]:
        """
        Get a fresh document by canonical URL

        Args:
            key: Canonical source URL
            bypass: Force a miss without touching the stored entry

        Returns:
            CachedDocument if present and fresh, None otherwise
        """
        if bypass:
            return None

        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock(), self._ttl):
                # Passive collection of the stale entry
                del self._store[key]
                logger.debug(f"[DocumentCache] Expired: {key[:60]}...")
                return None
            return entry

    def put(self, key: str, html: str) -> CachedDocument:
        """
        Store a transformed document, then compact if over capacity.

        Returns:
            The stored entry
        """
        with self._lock:
            self._sequence += 1
            entry = CachedDocument(
                key=key,
                html=html,
                timestamp=self._clock(),
                sequence=self._sequence,
            )
            # Re-insert so dict order follows insertion order
            self._store.pop(key, None)
            self._store[key] = entry
            self._compact()
            return entry

    def evict_if_over_capacity(self) -> int:
        """
        Run the compaction sweep if the store is above capacity.

        Returns:
            Number of entries evicted
        """
        with self._lock:
            return self._compact()

    def cleanup_expired(self) -> int:
        """
        Remove all stale entries.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [
                k for k, v in self._store.items()
                if v.is_expired(now, self._ttl)
            ]
            for k in expired:
                del self._store[k]
            if expired:
                logger.info(f"[DocumentCache] Cleaned up {len(expired)} expired entries")
            return len(expired)

    def clear(self) -> int:
        """
        Clear all entries.

        Returns:
            Number of entries deleted
        """
        with self._lock:
            count = len(self._store)
            self._store.clear()
            logger.info(f"[DocumentCache] Cleared all {count} entries")
            return count

    def list_all(self) -> List[CachedDocument]:
        """All physically present entries, newest first"""
        with self._lock:
            return sorted(
                self._store.values(),
                key=lambda e: (-e.timestamp, -e.sequence)
            )

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        with self._lock:
            now = self._clock()
            entries = list(self._store.values())
            total_size = sum(e.size_bytes for e in entries)
            return {
                "total_entries": len(entries),
                "fresh_entries": sum(
                    1 for e in entries if not e.is_expired(now, self._ttl)
                ),
                "max_entries": self._max_entries,
                "target_entries": self._target_entries,
                "total_size_bytes": total_size,
                "total_size_mb": round(total_size / (1024 * 1024), 2),
                "ttl_seconds": self._ttl,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._store

    def _compact(self) -> int:
        """
        Evict oldest entries down to the target size (assumes lock held)

        Returns:
            Number of entries evicted
        """
        if len(self._store) <= self._max_entries:
            return 0

        oldest_first = sorted(
            self._store.values(),
            key=lambda e: (e.timestamp, e.sequence)
        )
        excess = len(self._store) - self._target_entries
        for entry in oldest_first[:excess]:
            del self._store[entry.key]

        logger.info(
            f"[DocumentCache] Evicted {excess} entries, {len(self._store)} remain"
        )
        return excess
