"""
Expiring key-value store for session-scoped state.

Holds pending outlines, pending slide validations and auto-approve
settings. Keys are plain strings; composite keys ("{session}:{slide}")
are queried with the prefix helpers so callers never keep a side index.

An expired entry is invisible to every read even before the background
sweep removes it. The sweep only reclaims memory.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float


class TtlStore(Generic[V]):
    """
    In-memory TTL map with prefix scans and bounded size.

    Args:
        default_ttl:    Seconds an entry stays live unless set() overrides it.
        max_size:       Capacity. The oldest entry is evicted when full.
        sweep_interval: Seconds between background sweeps (see start()).
        clock:          Monotonic seconds source. Tests pass a fake.
        name:           Label used in logs.
    """

    def __init__(
        self,
        default_ttl: float,
        max_size: int = 10_000,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = "store",
    ):
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.default_ttl = default_ttl
        self.max_size = max_size
        self.sweep_interval = sweep_interval
        self.name = name
        self._clock = clock
        self._entries: "OrderedDict[str, _Entry[V]]" = OrderedDict()
        self._sweeper: Optional[asyncio.Task] = None

    # ── Single-key operations ────────────────────────────────────────

    def set(self, key: str, value: V, ttl: Optional[float] = None) -> None:
        """Store value under key. Re-setting a key refreshes its position and expiry."""
        ttl = self.default_ttl if ttl is None else ttl
        self._entries.pop(key, None)

        if len(self._entries) >= self.max_size:
            self.evict_expired()
        while len(self._entries) >= self.max_size:
            evicted_key, _ = self._entries.popitem(last=False)
            logger.warning("%s at capacity (%d), evicted %s", self.name, self.max_size, evicted_key)

        self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl)

    def get(self, key: str, default: Optional[V] = None) -> Optional[V]:
        entry = self._entries.get(key)
        if entry is None:
            return default
        if self._expired(entry):
            del self._entries[key]
            return default
        return entry.value

    def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._expired(entry):
            del self._entries[key]
            return False
        return True

    def delete(self, key: str) -> bool:
        """Remove key. Returns True only if a live entry was removed."""
        entry = self._entries.pop(key, None)
        return entry is not None and not self._expired(entry)

    def pop(self, key: str) -> Optional[V]:
        """Get and delete in one step. None if absent or expired."""
        entry = self._entries.pop(key, None)
        if entry is None or self._expired(entry):
            return None
        return entry.value

    # ── Prefix operations ────────────────────────────────────────────

    def find_by_prefix(self, prefix: str) -> list[tuple[str, V]]:
        """All live (key, value) pairs whose key starts with prefix, oldest first."""
        now = self._clock()
        return [
            (key, entry.value)
            for key, entry in self._entries.items()
            if key.startswith(prefix) and entry.expires_at > now
        ]

    def has_prefix(self, prefix: str) -> bool:
        now = self._clock()
        return any(
            key.startswith(prefix) and entry.expires_at > now
            for key, entry in self._entries.items()
        )

    def delete_by_prefix(self, prefix: str) -> int:
        """Remove every entry under prefix. Returns how many live entries went."""
        now = self._clock()
        doomed = [key for key in self._entries if key.startswith(prefix)]
        live = 0
        for key in doomed:
            if self._entries.pop(key).expires_at > now:
                live += 1
        return live

    # ── Housekeeping ─────────────────────────────────────────────────

    def evict_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for entry in self._entries.values() if entry.expires_at > now)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def _expired(self, entry: _Entry[V]) -> bool:
        return entry.expires_at <= self._clock()

    # ── Background sweep ─────────────────────────────────────────────

    def start(self) -> None:
        """Start the periodic sweep. Needs a running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop(), name=f"{self.name}-sweep")

    async def close(self) -> None:
        """Stop the sweep and drop every entry."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        self._entries.clear()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            evicted = self.evict_expired()
            if evicted:
                logger.debug("%s: swept %d expired entries", self.name, evicted)
