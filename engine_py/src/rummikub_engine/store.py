"""
Room persistence.

The service only needs ``load``, ``save`` and ``delete``; any backend that
provides them can be injected. The in-memory store keeps rooms as
serialized JSON with an expiry, like a key-value cache would.
"""

import logging
import threading
import time
from typing import Callable, Dict, Optional, Protocol, Tuple

from .codes import normalize_code
from .constants import ROOM_TTL_SECONDS
from .models import Room
from .serialization import dumps_room, loads_room

logger = logging.getLogger(__name__)


class RoomStore(Protocol):
    def load(self, code: str) -> Optional[Room]: ...

    def save(self, room: Room) -> None: ...

    def delete(self, code: str) -> None: ...

    def exists(self, code: str) -> bool: ...


class InMemoryRoomStore:
    """Process-local room store with per-room expiry."""

    def __init__(self, ttl_seconds: int = ROOM_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._rooms: Dict[str, Tuple[bytes, float]] = {}
        self._lock = threading.Lock()

    def _key(self, code: str) -> str:
        return normalize_code(code)

    def load(self, code: str) -> Optional[Room]:
        key = self._key(code)
        with self._lock:
            entry = self._rooms.get(key)
            if entry is None:
                return None
            raw, expires_at = entry
            if expires_at <= self._clock():
                del self._rooms[key]
                logger.info(f"Room {key} expired")
                return None
        return loads_room(raw)

    def save(self, room: Room) -> None:
        key = self._key(room.code)
        raw = dumps_room(room)
        with self._lock:
            self._rooms[key] = (raw, self._clock() + self.ttl_seconds)

    def delete(self, code: str) -> None:
        with self._lock:
            self._rooms.pop(self._key(code), None)

    def exists(self, code: str) -> bool:
        return self.load(code) is not None

    def __len__(self) -> int:
        return len(self._rooms)
