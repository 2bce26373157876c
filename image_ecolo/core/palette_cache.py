"""
Palette Cache - keyed store for computed colour palettes

Palette construction is the most expensive pipeline step and does not depend
on quality or output size, so palettes are kept per (source, region, colour
count) fingerprint. Eviction policy: least recently used beyond ``max_size``,
and every entry of a previous source is dropped when a new source is loaded.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from threading import RLock
from typing import TYPE_CHECKING, Any, Dict, NamedTuple, Optional

if TYPE_CHECKING:
    from image_ecolo.operations.quantization import Palette

logger = logging.getLogger(__name__)


class PaletteKey(NamedTuple):
    """Fingerprint addressing one cached palette."""

    source_id: str
    region_id: str
    color_count: int

    def __str__(self) -> str:
        return f"{self.source_id[:12]}/{self.region_id}/{self.color_count}"


@dataclass
class PaletteCacheEntry:
    """Single cached palette"""

    key: PaletteKey
    palette: "Palette"
    created: datetime = field(default_factory=datetime.now)
    hits: int = 0


class PaletteCache:
    """LRU cache of palettes, scoped to the current source image"""

    def __init__(self, max_size: int = 16):
        """
        Initialize Palette Cache

        Args:
            max_size: Maximum number of palettes to keep
        """
        self.max_size = max_size
        self.entries: "OrderedDict[PaletteKey, PaletteCacheEntry]" = OrderedDict()

        # Statistics
        self.hit_count = 0
        self.miss_count = 0
        self.eviction_count = 0

        # Thread safety (RLock allows reentrant locking)
        self.lock = RLock()

        logger.info(f"Palette cache initialized with max size: {max_size}")

    def __len__(self) -> int:
        with self.lock:
            return len(self.entries)

    def __contains__(self, key: PaletteKey) -> bool:
        with self.lock:
            return key in self.entries

    def get(self, key: PaletteKey) -> Optional["Palette"]:
        """Return the cached palette for ``key`` or None, updating recency."""
        with self.lock:
            entry = self.entries.get(key)
            if entry is None:
                self.miss_count += 1
                return None

            self.entries.move_to_end(key)
            entry.hits += 1
            self.hit_count += 1
            logger.debug(f"Palette cache hit for {key}")
            return entry.palette

    def put(self, key: PaletteKey, palette: "Palette") -> None:
        """Store a palette, evicting the least recently used entries if full."""
        with self.lock:
            self.entries[key] = PaletteCacheEntry(key=key, palette=palette)
            self.entries.move_to_end(key)

            while len(self.entries) > self.max_size:
                evicted_key, _ = self.entries.popitem(last=False)
                self.eviction_count += 1
                logger.debug(f"Evicted palette {evicted_key} (cache full)")

    def retain_source(self, source_id: str) -> int:
        """
        Drop every palette that does not belong to ``source_id``.

        Args:
            source_id: Fingerprint of the source image now being edited

        Returns:
            Number of evicted entries
        """
        with self.lock:
            stale = [key for key in self.entries if key.source_id != source_id]
            for key in stale:
                del self.entries[key]

            self.eviction_count += len(stale)
            if stale:
                logger.info(f"Evicted {len(stale)} palette(s) from previous source images")
            return len(stale)

    def clear(self):
        """Clear all cached palettes and statistics"""
        with self.lock:
            self.entries.clear()
            self.hit_count = 0
            self.miss_count = 0
            self.eviction_count = 0

            logger.info("Palette cache cleared")

    def get_statistics(self) -> Dict[str, Any]:
        """Get cache statistics"""
        with self.lock:
            lookups = self.hit_count + self.miss_count
            return {
                "size": len(self.entries),
                "max_size": self.max_size,
                "hits": self.hit_count,
                "misses": self.miss_count,
                "evictions": self.eviction_count,
                "hit_rate": round(self.hit_count / lookups * 100, 2) if lookups else 0.0,
            }
