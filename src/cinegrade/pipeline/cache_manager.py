import collections
import threading
from typing import Optional

import numpy as np
from loguru import logger


class CachedImage:
    """
    Container for a developed raw buffer
    """
    def __init__(self, asset_id: str, data: np.ndarray):
        self.asset_id = asset_id
        self.data = data

        # Approximate size in MB
        self.size_mb = data.nbytes / (1024 * 1024)


class ImageCacheManager:
    """
    Thread-safe LRU cache for developed export buffers.
    """
    def __init__(self, max_items: int = 2, max_memory_mb: int = 1024):
        self.max_items = max_items
        self.max_memory_mb = max_memory_mb
        self.cache = collections.OrderedDict()
        self.lock = threading.Lock()
        self.current_memory_mb = 0.0

    def __len__(self):
        with self.lock:
            return len(self.cache)

    def __contains__(self, asset_id: str) -> bool:
        with self.lock:
            return asset_id in self.cache

    def get(self, asset_id: str) -> Optional[CachedImage]:
        with self.lock:
            if asset_id in self.cache:
                # Mark as recently used
                self.cache.move_to_end(asset_id)
                return self.cache[asset_id]
            return None

    def put(self, asset_id: str, item: CachedImage):
        with self.lock:
            self._remove(asset_id)
            self.cache[asset_id] = item
            self.current_memory_mb += item.size_mb

            while len(self.cache) > self.max_items:
                self._pop_oldest("count")
            # The newest buffer stays even when it alone is over the limit
            while self.current_memory_mb > self.max_memory_mb and len(self.cache) > 1:
                self._pop_oldest("memory")

            logger.debug(f"[Cache] Added {asset_id}. Items: {len(self.cache)}, Mem: {self.current_memory_mb:.1f}MB")

    def _pop_oldest(self, reason: str):
        asset_id, item = self.cache.popitem(last=False)
        self.current_memory_mb -= item.size_mb
        logger.debug(f"[Cache] Evicted {asset_id} ({reason}). Mem: {self.current_memory_mb:.1f}MB")

    def _remove(self, asset_id: str):
        item = self.cache.pop(asset_id, None)
        if item is not None:
            self.current_memory_mb -= item.size_mb

    def discard(self, asset_id: str):
        with self.lock:
            self._remove(asset_id)

    def clear(self):
        with self.lock:
            self.cache.clear()
            self.current_memory_mb = 0.0
