"""
Satchel sessions - Expired identifier registry.

Tracks session identifiers that were explicitly retired so they are never
accepted from a request again. The registry is a collaborator handed to
SessionIdState, not a module-level global:

- MemoryExpiredRegistry: bounded, age-evicting, thread-safe (default)

Any object implementing ExpiredIdRegistry can be injected instead, e.g.
one backed by the same storage as the session data.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable, Protocol

logger = logging.getLogger("satchel.sessions.registry")


class ExpiredIdRegistry(Protocol):
    """
    Registry of retired session identifiers.

    ``add`` and ``__contains__`` must be linearizable with respect to each
    other when the hosting server handles requests concurrently.
    """

    def add(self, session_id: str) -> int:
        """Record one expiry of ``session_id``; return its new count."""
        ...

    def __contains__(self, session_id: str) -> bool:
        ...

    def count(self, session_id: str) -> int:
        """Number of times ``session_id`` was expired (0 if unknown)."""
        ...


class MemoryExpiredRegistry:
    """
    In-process registry with a size bound and time-based eviction.

    Entries older than ``ttl`` seconds (measured from their first expiry)
    are forgotten; when more than ``max_entries`` are held, the oldest are
    dropped first. Pick ``ttl`` no shorter than the lifetime of the
    session cookie or stored session so a forgotten id can no longer be
    replayed.

    Example:
        >>> registry = MemoryExpiredRegistry(max_entries=2, ttl=None)
        >>> registry.add("a" * 40)
        1
        >>> "a" * 40 in registry
        True
    """

    def __init__(
        self,
        max_entries: int | None = 100_000,
        ttl: float | None = 86_400.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            max_entries: Maximum ids kept (None = unbounded)
            ttl: Seconds an id stays expired (None = forever)
            clock: Monotonic time source, injectable for tests
        """
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be positive or None")
        if ttl is not None and ttl <= 0:
            raise ValueError("ttl must be positive or None")

        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock
        # session_id -> [first_expired_at, count], oldest first
        self._entries: OrderedDict[str, list] = OrderedDict()
        self._lock = threading.Lock()

    def add(self, session_id: str) -> int:
        with self._lock:
            now = self._clock()
            self._purge(now)

            entry = self._entries.get(session_id)
            if entry is None:
                entry = [now, 0]
                self._entries[session_id] = entry
            entry[1] += 1

            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    logger.debug(f"Evicted expired id {evicted[:8]}... (capacity)")

            return entry[1]

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            self._purge(self._clock())
            return session_id in self._entries

    def count(self, session_id: str) -> int:
        with self._lock:
            self._purge(self._clock())
            entry = self._entries.get(session_id)
            return entry[1] if entry else 0

    def __len__(self) -> int:
        with self._lock:
            self._purge(self._clock())
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _purge(self, now: float) -> None:
        """Drop entries past their TTL. Caller holds the lock."""
        if self.ttl is None:
            return

        cutoff = now - self.ttl
        while self._entries:
            session_id, (first_seen, _) = next(iter(self._entries.items()))
            if first_seen > cutoff:
                break
            del self._entries[session_id]
            logger.debug(f"Evicted expired id {session_id[:8]}... (ttl)")
