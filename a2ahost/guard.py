"""Session Guard — one host call at a time.

Every entry-point call runs inside ``session()``: the lock is acquired with a
bounded wait, a fresh audit buffer is handed out, and on the way out the
buffer is flushed once (when logging is enabled) before the lock is released.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator

from a2ahost.audit import MAX_FIELD_CHARS, AuditBuffer, AuditSink
from a2ahost.exceptions import SessionTimeoutError

_logger = logging.getLogger(__name__)


class BaseLock(ABC):
    @abstractmethod
    async def acquire(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds; ``True`` when the lock is held."""

    @abstractmethod
    def release(self) -> None: ...


class AsyncioLock(BaseLock):
    """In-process lock for a single event loop."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()

    async def acquire(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def release(self) -> None:
        self._lock.release()

    @property
    def locked(self) -> bool:
        return self._lock.locked()


class SessionGuard:
    """Serializes host calls and owns the audit flush."""

    def __init__(
        self,
        lock: BaseLock | None = None,
        timeout: float = 350.0,
        sink: AuditSink | None = None,
        enable_logging: bool = False,
        max_chars: int = MAX_FIELD_CHARS,
    ) -> None:
        self._lock = lock or AsyncioLock()
        self._timeout = timeout
        self._sink = sink
        self._enable_logging = enable_logging
        self._max_chars = max_chars

    @contextlib.asynccontextmanager
    async def session(self) -> AsyncIterator[AuditBuffer]:
        """Hold the lock for one call.

        Raises:
            SessionTimeoutError: the lock was not acquired within the timeout.
        """
        if not await self._lock.acquire(self._timeout):
            _logger.error("Timeout waiting for the session lock (%.1fs)", self._timeout)
            raise SessionTimeoutError("Timeout.")

        audit = AuditBuffer()
        try:
            yield audit
        finally:
            try:
                await self.flush(audit)
            finally:
                self._lock.release()

    async def flush(self, audit: AuditBuffer) -> None:
        """Hand the buffered records to the sink, if logging is on."""
        if not self._enable_logging or self._sink is None or not len(audit):
            return
        try:
            await self._sink.append(audit.rows(self._max_chars))
        except Exception:
            _logger.exception("Failed to flush %d audit record(s)", len(audit))
