"""In-memory TTL cache for proxied SIFAM GETs. One instance per process, injected into the app."""

import threading
import time


class TTLCache:
    """Fixed-window cache keyed by upstream URL. Entries only leave by expiry."""

    def __init__(self, ttl: float = 300.0, clock=time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._entries: dict[str, tuple[object, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str):
        """Returns (hit, value)."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False, None
            value, stored_at = entry
            if self.clock() - stored_at >= self.ttl:
                del self._entries[key]
                return False, None
            return True, value

    def set(self, key: str, value) -> None:
        with self._lock:
            self._entries[key] = (value, self.clock())

    def get_or_fetch(self, key: str, fetch):
        hit, value = self.get(key)
        if hit:
            return value
        value = fetch()
        self.set(key, value)
        return value

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
