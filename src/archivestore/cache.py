"""Bounded, expiring cache for loaded sidecar metadata"""
import copy
import logging
import threading
import time
from collections import OrderedDict


class MetadataCache:
    """Thread-safe cache of metadata maps keyed by sidecar path.

    Entries expire `ttl` seconds after they were stored and the least recently used
    entry is evicted once `max_size` entries are held. The cache is created by the
    caller and handed to whichever component needs it, there is no process-wide
    instance. Values are copied on the way in and out so callers can never mutate a
    cached map.

    :param int max_size: Maximum number of cached maps (must be > 0).
    :param float ttl: Seconds an entry stays valid (must be > 0).
    :param callable clock: Monotonic clock, replaceable in tests.
    """

    def __init__(self, max_size, ttl, clock=time.monotonic):
        if not isinstance(max_size, int) or max_size < 1:
            raise ValueError(f"MetadataCache - max_size must be an integer > 0: {max_size}")
        if ttl is None or ttl <= 0:
            raise ValueError(f"MetadataCache - ttl must be > 0: {ttl}")
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key):
        """Return a copy of the cached map for `key`, or None when absent/expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                logging.debug("MetadataCache - get: Entry expired for %s", key)
                return None
            self._entries.move_to_end(key)
            return copy.deepcopy(value)

    def put(self, key, value):
        """Store a copy of `value` for `key`, evicting the oldest entry if full."""
        with self._lock:
            self._entries[key] = (self._clock() + self.ttl, copy.deepcopy(value))
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                evicted_key, _ = self._entries.popitem(last=False)
                logging.debug("MetadataCache - put: Evicted entry for %s", evicted_key)

    def invalidate(self, key):
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_prefix(self, prefix):
        """Drop every entry whose key starts with `prefix` (a whole subtree)."""
        with self._lock:
            for key in [key for key in self._entries if key.startswith(prefix)]:
                del self._entries[key]

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)
