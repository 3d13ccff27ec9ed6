"""
Satchel sessions - Session storage abstraction.

Defines SessionStore protocol and concrete implementations:
- MemoryStore: In-memory storage (dev/testing, single process)
- FileStore: File-based storage (debugging)

Stores only persist session data keyed by session id. They know nothing
about id validity or expiry of ids; that is SessionIdState's job.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import re
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Callable, Protocol

from .faults import SessionStoreCorruptedFault, SessionStoreUnavailableFault

logger = logging.getLogger("satchel.sessions.store")

_SAFE_FILE_ID = re.compile(r"\A[A-Za-z0-9_-]{1,128}\Z")


# ============================================================================
# SessionStore Protocol
# ============================================================================

class SessionStore(Protocol):
    """
    Abstract session storage interface.

    All methods are async so stores backed by real I/O fit the same shape.
    """

    async def load(self, session_id: str) -> dict[str, Any] | None:
        """
        Load session data.

        Returns:
            Session data if found, None otherwise

        Raises:
            SessionStoreUnavailableFault: Store is unavailable
            SessionStoreCorruptedFault: Data is corrupted
        """
        ...

    async def save(self, session_id: str, data: dict[str, Any]) -> None:
        """
        Save session data.

        Raises:
            SessionStoreUnavailableFault: Store is unavailable
        """
        ...

    async def delete(self, session_id: str) -> None:
        """Delete session data (no-op if absent)."""
        ...

    async def exists(self, session_id: str) -> bool:
        ...

    async def cleanup(self) -> int:
        """
        Remove stale sessions.

        Returns:
            Number of sessions removed
        """
        ...

    async def shutdown(self) -> None:
        """Gracefully shutdown store (close connections, flush buffers)."""
        ...


# ============================================================================
# MemoryStore - In-Memory Storage
# ============================================================================

class MemoryStore:
    """
    In-memory session storage for development and testing.

    Features:
    - OrderedDict storage with LRU eviction at ``max_sessions``
    - Optional ``ttl`` after which an unsaved session disappears
    - Data is copied in and out, so in-request mutation is invisible to
      other requests until the session is saved

    NOT suitable for multi-process deployments (no sharing across workers).

    Example:
        >>> store = MemoryStore(max_sessions=10000)
        >>> await store.save(sid, {"user": 1})
        >>> await store.load(sid)
        {'user': 1}
    """

    def __init__(
        self,
        max_sessions: int = 10000,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize memory store.

        Args:
            max_sessions: Maximum sessions to keep (LRU eviction)
            ttl: Seconds a session lives after its last save (None = forever)
            clock: Monotonic time source, injectable for tests
        """
        self.max_sessions = max_sessions
        self.ttl = ttl
        self._clock = clock
        # session_id -> (saved_at, data), least recently used first
        self._sessions: OrderedDict[str, tuple[float, dict[str, Any]]] = OrderedDict()
        self._lock = asyncio.Lock()

    async def load(self, session_id: str) -> dict[str, Any] | None:
        async with self._lock:
            entry = self._sessions.get(session_id)
            if entry is None:
                return None

            saved_at, data = entry
            if self._is_stale(saved_at, self._clock()):
                del self._sessions[session_id]
                return None

            self._sessions.move_to_end(session_id)
            return copy.deepcopy(data)

    async def save(self, session_id: str, data: dict[str, Any]) -> None:
        async with self._lock:
            if session_id not in self._sessions and len(self._sessions) >= self.max_sessions:
                self._evict_lru()

            self._sessions[session_id] = (self._clock(), copy.deepcopy(data))
            self._sessions.move_to_end(session_id)

    async def delete(self, session_id: str) -> None:
        async with self._lock:
            self._sessions.pop(session_id, None)

    async def exists(self, session_id: str) -> bool:
        async with self._lock:
            entry = self._sessions.get(session_id)
            return entry is not None and not self._is_stale(entry[0], self._clock())

    async def cleanup(self) -> int:
        """Remove sessions past their TTL."""
        if self.ttl is None:
            return 0

        async with self._lock:
            now = self._clock()
            stale = [
                sid for sid, (saved_at, _) in self._sessions.items()
                if self._is_stale(saved_at, now)
            ]
            for sid in stale:
                del self._sessions[sid]

        if stale:
            logger.debug(f"Removed {len(stale)} stale sessions")
        return len(stale)

    async def shutdown(self) -> None:
        """Shutdown store (clear memory)."""
        async with self._lock:
            self._sessions.clear()

    def _is_stale(self, saved_at: float, now: float) -> bool:
        return self.ttl is not None and now - saved_at >= self.ttl

    def _evict_lru(self) -> None:
        if not self._sessions:
            return
        oldest_id, _ = self._sessions.popitem(last=False)
        logger.debug(f"Evicted session {oldest_id[:8]}... (capacity)")

    def get_stats(self) -> dict[str, Any]:
        """Get store statistics."""
        return {
            "total_sessions": len(self._sessions),
            "max_sessions": self.max_sessions,
            "utilization": len(self._sessions) / self.max_sessions if self.max_sessions > 0 else 0,
        }


# ============================================================================
# FileStore - File-Based Storage
# ============================================================================

class FileStore:
    """
    File-based session storage for debugging and development.

    Features:
    - One JSON file per session
    - Human-readable format
    - Atomic writes (temp file + replace)

    Session data must be JSON serializable. Ids that are not safe file
    names are treated as unknown sessions.

    Example:
        >>> store = FileStore(directory="/tmp/sessions")
        >>> await store.save(sid, {"cart": [1, 2]})
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    def _get_path(self, session_id: str) -> Path | None:
        if not _SAFE_FILE_ID.match(session_id):
            return None
        return self.directory / f"{session_id}.json"

    async def load(self, session_id: str) -> dict[str, Any] | None:
        path = self._get_path(session_id)
        if path is None:
            return None

        try:
            async with self._lock:
                if not path.exists():
                    return None
                data = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise SessionStoreCorruptedFault(session_id=session_id, cause=str(e))
        except OSError as e:
            raise SessionStoreUnavailableFault(store_name="file", cause=str(e))

        if not isinstance(data, dict):
            raise SessionStoreCorruptedFault(
                session_id=session_id,
                cause=f"expected an object, got {type(data).__name__}",
            )
        return data

    async def save(self, session_id: str, data: dict[str, Any]) -> None:
        path = self._get_path(session_id)
        if path is None:
            raise SessionStoreUnavailableFault(
                store_name="file",
                cause="session id is not a safe file name",
            )

        try:
            async with self._lock:
                payload = json.dumps(data, indent=2)
                temp_path = path.with_suffix(".tmp")
                temp_path.write_text(payload)
                os.replace(temp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise SessionStoreUnavailableFault(store_name="file", cause=str(e))

    async def delete(self, session_id: str) -> None:
        path = self._get_path(session_id)
        if path is None:
            return

        try:
            async with self._lock:
                path.unlink(missing_ok=True)
        except OSError as e:
            raise SessionStoreUnavailableFault(store_name="file", cause=str(e))

    async def exists(self, session_id: str) -> bool:
        path = self._get_path(session_id)
        return path is not None and path.exists()

    async def cleanup(self) -> int:
        """Remove leftover temp files from interrupted writes."""
        removed = 0
        async with self._lock:
            for temp_path in self.directory.glob("*.tmp"):
                try:
                    temp_path.unlink()
                    removed += 1
                except OSError:
                    logger.warning(f"Could not remove {temp_path.name}")
        return removed

    async def shutdown(self) -> None:
        pass
