"""
In-memory deduplication of inbound webhook deliveries.
"""

from typing import Dict, Optional
import asyncio
import logging
import threading
import time

logger = logging.getLogger(__name__)


class DeduplicationCache:
    """Remembers recently seen inbound message keys for a fixed time window.

    The cache is owned by the application and shared by all handlers. Check and
    mark are separate calls, so two concurrent deliveries of the same message
    can both pass ``seen``; the persisted repliesTo check catches that case.
    """

    def __init__(self, ttl_seconds: float = 86400):
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, float] = {}
        self._lock = threading.Lock()

    @staticmethod
    def make_key(channel_id, dialog_id, message_id) -> str:
        return f"{channel_id}:{dialog_id}:{message_id}"

    def seen(self, key: str) -> bool:
        with self._lock:
            first_seen = self._entries.get(key)
        if first_seen is None:
            return False
        return time.time() - first_seen < self.ttl_seconds

    def mark_seen(self, key: str) -> None:
        now = time.time()
        with self._lock:
            first_seen = self._entries.get(key)
            # an expired entry that has not been swept yet starts a new window
            if first_seen is None or now - first_seen >= self.ttl_seconds:
                self._entries[key] = now

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop entries older than the TTL and return how many were removed."""
        now = time.time() if now is None else now
        with self._lock:
            expired = [key for key, first_seen in self._entries.items() if now - first_seen >= self.ttl_seconds]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Dedup sweep removed {len(expired)} entries")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def run_sweeper(self, interval_seconds: float, stop_event: asyncio.Event) -> None:
        """Sweep periodically until ``stop_event`` is set."""
        logger.info(f"Dedup sweeper started (interval={interval_seconds}s, ttl={self.ttl_seconds}s)")
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                self.sweep()
        logger.info("Dedup sweeper stopped")
