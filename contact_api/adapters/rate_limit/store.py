"""In-memory timestamp store backing the sliding-window limiter.

Maps client identifiers to the ordered list of accepted request timestamps
(epoch milliseconds). Growth is bounded by a pluggable eviction strategy:

- ``none``: lazy per-key pruning only; keys live for the process lifetime.
- ``sweep``: periodically drops every key with no timestamp inside the TTL.
- ``lru``: soft cap on the number of keys; only stale keys are evicted,
  least recently written first.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: callers doing read-modify-write hold ``store.lock``.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict

logger = logging.getLogger(__name__)

Entries = OrderedDict[str, list[int]]


class EvictionStrategy(ABC):
    """Hook invoked by the store around reads and writes (lock held)."""

    name: str = "abstract"

    @abstractmethod
    def before_access(self, entries: Entries, now: int) -> int:
        """Run before a key is read. Returns number of evicted keys."""
        raise NotImplementedError

    @abstractmethod
    def after_write(self, entries: Entries, now: int) -> int:
        """Run after a key is written. Returns number of evicted keys."""
        raise NotImplementedError


class NoEviction(EvictionStrategy):
    """Keep every key; histories are only pruned when their key is checked."""

    name = "none"

    def before_access(self, entries: Entries, now: int) -> int:
        return 0

    def after_write(self, entries: Entries, now: int) -> int:
        return 0


def _is_stale(timestamps: list[int], now: int, ttl_ms: int) -> bool:
    return not timestamps or max(timestamps) <= now - ttl_ms


class PeriodicSweepEviction(EvictionStrategy):
    """Full-store sweep at most once per ``interval_ms``.

    Attributes:
        ttl_ms: Keys whose newest timestamp is older than this are dropped.
        interval_ms: Minimum time between two sweeps.
    """

    name = "sweep"

    def __init__(self, *, ttl_ms: int, interval_ms: int) -> None:
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be > 0")
        if interval_ms <= 0:
            raise ValueError("interval_ms must be > 0")
        self._ttl_ms = ttl_ms
        self._interval_ms = interval_ms
        self._last_sweep: int | None = None

    def before_access(self, entries: Entries, now: int) -> int:
        if self._last_sweep is not None and now - self._last_sweep < self._interval_ms:
            return 0
        self._last_sweep = now
        stale = [k for k, ts in entries.items() if _is_stale(ts, now, self._ttl_ms)]
        for key in stale:
            del entries[key]
        return len(stale)

    def after_write(self, entries: Entries, now: int) -> int:
        return 0


class LRUEviction(EvictionStrategy):
    """Key cap that only ever evicts stale keys, least recently written first.

    A key is stale once its newest timestamp is older than ``ttl_ms``, so
    evicting it never changes a decision. When every key over the cap is
    still live the store is allowed to grow past ``max_keys``.
    """

    name = "lru"

    def __init__(self, *, max_keys: int, ttl_ms: int) -> None:
        if max_keys < 1:
            raise ValueError("max_keys must be >= 1")
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be > 0")
        self._max_keys = max_keys
        self._ttl_ms = ttl_ms
        self._over_capacity = False

    def before_access(self, entries: Entries, now: int) -> int:
        return 0

    def after_write(self, entries: Entries, now: int) -> int:
        evicted = 0
        # Entries are kept in write order, so stale keys sit at the front.
        while entries:
            key, timestamps = next(iter(entries.items()))
            if not _is_stale(timestamps, now, self._ttl_ms):
                break
            del entries[key]
            evicted += 1

        over_capacity = len(entries) > self._max_keys
        if over_capacity and not self._over_capacity:
            logger.warning(
                "rate_limit.store.over_capacity",
                extra={"keys": len(entries), "max_keys": self._max_keys},
            )
        self._over_capacity = over_capacity
        return evicted


def build_eviction_strategy(
    name: str,
    *,
    ttl_ms: int,
    max_keys: int = 10_000,
    sweep_interval_ms: int = 60_000,
) -> EvictionStrategy:
    """Create an eviction strategy by name (``none``, ``sweep`` or ``lru``).

    Raises:
        ValueError: If the name is unknown.
    """

    normalized = name.strip().lower()
    if normalized == "none":
        return NoEviction()
    if normalized == "sweep":
        return PeriodicSweepEviction(ttl_ms=ttl_ms, interval_ms=sweep_interval_ms)
    if normalized == "lru":
        return LRUEviction(max_keys=max_keys, ttl_ms=ttl_ms)
    raise ValueError(f"Unknown eviction strategy: {name!r}")


class InMemoryRateLimitStore:
    """Thread-safe mapping of identifier -> accepted request timestamps."""

    def __init__(self, eviction: EvictionStrategy | None = None) -> None:
        self._entries: Entries = OrderedDict()
        self._eviction = eviction or NoEviction()
        self._evictions = 0
        self.lock = threading.RLock()

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"InMemoryRateLimitStore(eviction={self._eviction.name}, "
            f"keys={len(self._entries)}, evictions={self._evictions})"
        )

    def __len__(self) -> int:
        with self.lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self.lock:
            return key in self._entries

    def get(self, key: str, now: int) -> list[int]:
        """Return a copy of the history for ``key`` (empty if absent)."""

        with self.lock:
            self._record_evictions(self._eviction.before_access(self._entries, now))
            return list(self._entries.get(key, ()))

    def set(self, key: str, timestamps: list[int], now: int) -> None:
        """Replace the history for ``key`` and mark it most recently written."""

        with self.lock:
            self._entries[key] = list(timestamps)
            self._entries.move_to_end(key)
            self._record_evictions(self._eviction.after_write(self._entries, now))

    def delete(self, key: str) -> None:
        with self.lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Remove every key and reset counters."""

        with self.lock:
            self._entries.clear()
            self._evictions = 0

    def stats(self) -> dict[str, int | str]:
        with self.lock:
            return {
                "eviction": self._eviction.name,
                "keys": len(self._entries),
                "evictions": self._evictions,
            }

    def _record_evictions(self, count: int) -> None:
        if count:
            self._evictions += count
            logger.debug(
                "rate_limit.store.evicted",
                extra={"evicted": count, "keys": len(self._entries)},
            )
