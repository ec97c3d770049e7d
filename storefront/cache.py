import threading
import time
from typing import Dict, List, Optional, Tuple

from .config import SESSION_CACHE_TTL_SECONDS
from .models import LineItem


class SessionCache:
    """Short-lived in-memory copy of remote lists, kept for offline fallback."""

    def __init__(self, ttl: float = SESSION_CACHE_TTL_SECONDS):
        self.ttl = ttl
        self._entries: Dict[str, Tuple[float, List[LineItem]]] = {}
        self._lock = threading.Lock()

    def put(self, key: str, items: List[LineItem]) -> None:
        with self._lock:
            self._entries[key] = (time.monotonic() + self.ttl, [it.copy() for it in items])

    def get(self, key: str) -> Optional[List[LineItem]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, items = entry
            if time.monotonic() >= expires_at:
                del self._entries[key]
                return None
            return [it.copy() for it in items]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
