import os
import time
import logging
import threading
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# Default 5 menit
CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", 300))


class QueryCache:
    """
    Cache hasil query per key tuple, misal ("iuran",) atau
    ("user-submission", user_id, "2024-06-01").

    invalidate(*prefix) menandai semua key yang diawali prefix itu basi,
    jadi pembacaan berikutnya query ulang ke DB.
    """

    def __init__(self, ttl: int = CACHE_TTL_SECONDS):
        self.ttl = ttl
        self._store = {}
        self._lock = threading.Lock()

    def get_or_load(self, key: tuple, loader):
        now = time.monotonic()
        with self._lock:
            hit = self._store.get(key)
            if hit and hit[0] > now:
                return hit[1]

        value = loader()
        with self._lock:
            self._store[key] = (now + self.ttl, value)
        return value

    def invalidate(self, *prefix):
        with self._lock:
            stale = [k for k in self._store if k[:len(prefix)] == prefix]
            for k in stale:
                del self._store[k]
        if stale:
            logger.debug("Cache invalidated %s (%d keys)", prefix, len(stale))

    def clear(self):
        with self._lock:
            self._store.clear()


query_cache = QueryCache()
