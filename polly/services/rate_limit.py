from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import math
from threading import Lock
import time
from typing import Callable


logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MS = 300_000
DEFAULT_MAX_REQUESTS = 100

_USER_AGENT_KEY_CHARS = 50


@dataclass(frozen=True)
class RateLimitDecision:
    # Capture the outcome and the header hints for a single request.
    allowed: bool
    limit: int
    remaining: int
    reset_at_ms: int
    retry_after_ms: int

    @property
    def retry_after_s(self) -> int:
        return max(int(math.ceil(self.retry_after_ms / 1000.0)), 1) if not self.allowed else 0


@dataclass
class _WindowEntry:
    window_start_ms: int
    count: int
    lock: Lock


class RateLimiter:
    """Fixed-window request counter keyed by client.

    Each key owns ``(window_start, count)``. A request against a stale window
    (older than ``window_ms``) starts a fresh window with ``count = 1``;
    otherwise the request is limited once ``count`` has reached
    ``max_requests`` and counted when it has not. Bursts straddling a window
    edge are tolerated. State lives in process memory and is lost on restart.

    Each key's read-modify-write runs under that key's own lock, so distinct
    keys never contend. The table lock is held only to create or purge
    entries. A background sweep started with :meth:`start` purges entries
    older than one window, once per window.
    """

    def __init__(
        self,
        *,
        window_ms: int = DEFAULT_WINDOW_MS,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        time_provider: Callable[[], float] | None = None,
    ) -> None:
        if window_ms <= 0 or max_requests <= 0:
            raise ValueError("window_ms and max_requests must be positive")
        self.window_ms = window_ms
        self.max_requests = max_requests
        # Allow injecting time for deterministic tests.
        self._time_provider = time_provider or time.time
        self._entries: dict[str, _WindowEntry] = {}
        self._table_lock = Lock()
        self._sweeper: asyncio.Task[None] | None = None

    def _now_ms(self) -> int:
        return int(self._time_provider() * 1000)

    def _entry_for(self, client_key: str, now_ms: int) -> _WindowEntry:
        # Known keys are read without the table lock; dict reads are atomic.
        entry = self._entries.get(client_key)
        if entry is not None:
            return entry
        with self._table_lock:
            # Re-check under the lock so two first requests share one entry.
            entry = self._entries.get(client_key)
            if entry is None:
                # Born stale so the first request opens a fresh window.
                entry = _WindowEntry(window_start_ms=now_ms - self.window_ms - 1, count=0, lock=Lock())
                self._entries[client_key] = entry
            return entry

    def check_and_consume(self, client_key: str) -> RateLimitDecision:
        now_ms = self._now_ms()
        entry = self._entry_for(client_key, now_ms)
        with entry.lock:
            if now_ms - entry.window_start_ms > self.window_ms:
                entry.window_start_ms = now_ms
                entry.count = 1
                allowed = True
            elif entry.count >= self.max_requests:
                allowed = False
            else:
                entry.count += 1
                allowed = True
            reset_at_ms = entry.window_start_ms + self.window_ms
            remaining = max(self.max_requests - entry.count, 0)

        if allowed:
            return RateLimitDecision(
                allowed=True,
                limit=self.max_requests,
                remaining=remaining,
                reset_at_ms=reset_at_ms,
                retry_after_ms=0,
            )
        return RateLimitDecision(
            allowed=False,
            limit=self.max_requests,
            remaining=0,
            reset_at_ms=reset_at_ms,
            retry_after_ms=max(reset_at_ms - now_ms, 0),
        )

    def purge_expired(self) -> int:
        # Drop entries whose window closed more than one window ago.
        now_ms = self._now_ms()
        with self._table_lock:
            expired = [
                key
                for key, entry in self._entries.items()
                if now_ms - entry.window_start_ms > self.window_ms
            ]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("rate_limit_purged entries=%s", len(expired))
        return len(expired)

    def tracked_keys(self) -> int:
        with self._table_lock:
            return len(self._entries)

    def reset(self) -> None:
        # Reset window state for deterministic test setup.
        with self._table_lock:
            self._entries.clear()

    async def _sweep_loop(self) -> None:
        interval_s = self.window_ms / 1000.0
        while True:
            await asyncio.sleep(interval_s)
            self.purge_expired()

    def start(self) -> None:
        # Launch the periodic purge on the running loop; safe to call twice.
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop(self) -> None:
        sweeper = self._sweeper
        self._sweeper = None
        if sweeper is None:
            return
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass


def client_key(ip_address: str | None, user_agent: str | None) -> str:
    # Compose the limiter key from network origin and a bounded client signature.
    return f"{ip_address or 'unknown'}-{(user_agent or 'unknown')[:_USER_AGENT_KEY_CHARS]}"
