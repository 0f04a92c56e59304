import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

DEFAULT_TTL = timedelta(minutes=10)


class DeliveryLedger:
    """
    Minimal async-safe in-memory record of processed message ids.

    Channels redeliver webhooks they consider unacknowledged; a redelivered id
    seen within the TTL is rejected so it is never dispatched twice.
    Replace with Redis when running more than one worker.
    """

    def __init__(self, ttl: timedelta = DEFAULT_TTL) -> None:
        self._lock: Optional[asyncio.Lock] = None
        self._seen: Dict[str, datetime] = {}
        self._ttl = ttl

    def _ensure_lock(self) -> asyncio.Lock:
        """Create the asyncio lock inside an active event loop when first needed."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def claim(self, message_id: str, now: Optional[datetime] = None) -> bool:
        """Record ``message_id``; return False if it was already claimed within the TTL."""
        async with self._ensure_lock():
            now = now or datetime.now(timezone.utc)
            self._evict_expired(now)
            if message_id in self._seen:
                return False
            self._seen[message_id] = now
            return True

    async def release(self, message_id: str) -> None:
        """Forget ``message_id`` so a later redelivery is processed again."""
        async with self._ensure_lock():
            self._seen.pop(message_id, None)

    def __len__(self) -> int:
        return len(self._seen)

    def _evict_expired(self, now: datetime) -> None:
        expired = [key for key, seen_at in self._seen.items() if now - seen_at > self._ttl]
        for key in expired:
            del self._seen[key]
