import threading
import time
from collections import OrderedDict
from dataclasses import dataclass

from geo_resolver.logger import logger
from geo_resolver.models.common import CacheItem, CacheSnapshot, LookupResult
from geo_resolver.rate_limiter import Clock


@dataclass
class CacheEntry:
    result: LookupResult
    written_at: float


class ResponseCache:
    """In-memory TTL cache of lookup results keyed by IP.

    Expired entries are evicted lazily when read; there is no background sweep.
    When `max_entries` is set, the least recently used entry is dropped once
    the bound is exceeded.
    """

    def __init__(self, ttl: float, max_entries: int | None = None, clock: Clock = time.monotonic) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, ip: str) -> LookupResult | None:
        with self._lock:
            entry = self._entries.get(ip)
            if entry is None:
                return None

            if self._clock() - entry.written_at >= self.ttl:
                del self._entries[ip]
                logger.debug(f"Cache entry expired ip={ip}")
                return None

            self._entries.move_to_end(ip)
            return entry.result

    def put(self, ip: str, result: LookupResult) -> None:
        with self._lock:
            self._entries[ip] = CacheEntry(result=result, written_at=self._clock())
            self._entries.move_to_end(ip)
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    evicted_ip, _ = self._entries.popitem(last=False)
                    logger.debug(f"Cache entry evicted ip={evicted_ip} max_entries={self.max_entries}")

    def clear(self) -> int:
        """Remove every entry and return how many were removed."""
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
        logger.info(f"Cache cleared removed={removed}")
        return removed

    def snapshot(self) -> CacheSnapshot:
        with self._lock:
            now = self._clock()
            items = []
            for ip, entry in self._entries.items():
                age = int(now - entry.written_at)
                items.append(
                    CacheItem(
                        ip=ip,
                        source=entry.result.source,
                        age=age,
                        expires_in=max(0, int(self.ttl - age)),
                    )
                )
        return CacheSnapshot(ttl=self.ttl, size=len(items), max_entries=self.max_entries, items=items)
