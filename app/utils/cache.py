"""Short-lived request-coalescing cache for read-heavy submission queries"""
import logging
import threading
import time
from concurrent.futures import Future

logger = logging.getLogger(__name__)


class RequestCoalescingCache:
    """
    Caches loader results for ``ttl_seconds`` and collapses concurrent loads
    of the same key into one call.

    Results are advisory: writers call ``invalidate`` after every change and
    a failed load is never cached, so readers only ever wait on work that is
    already happening.
    """

    def __init__(self, ttl_seconds=5.0, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries = {}    # key -> (stored_at, value)
        self._in_flight = {}  # key -> Future
        self._generation = 0

    def get_or_load(self, key, loader):
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                stored_at, value = entry
                if self._clock() - stored_at < self.ttl_seconds:
                    return value
                del self._entries[key]

            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[key] = future
                generation = self._generation

        if not owner:
            return future.result()

        try:
            value = loader()
        except BaseException as exc:
            with self._lock:
                self._in_flight.pop(key, None)
            future.set_exception(exc)
            raise

        with self._lock:
            self._in_flight.pop(key, None)
            # An invalidation during the load means the result may be stale
            if generation == self._generation:
                self._entries[key] = (self._clock(), value)
        future.set_result(value)
        return value

    def invalidate(self, prefix=None):
        with self._lock:
            self._generation += 1
            if prefix is None:
                dropped = len(self._entries)
                self._entries.clear()
            else:
                keys = [k for k in self._entries if _key_text(k).startswith(prefix)]
                for k in keys:
                    del self._entries[k]
                dropped = len(keys)
        logger.debug(f"Invalidated {dropped} cache entries (prefix={prefix!r})")

    def __len__(self):
        with self._lock:
            return len(self._entries)


def _key_text(key):
    if isinstance(key, tuple):
        return ':'.join(str(part) for part in key)
    return str(key)
