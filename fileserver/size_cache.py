"""Directory size memoization with a TTL, gated by active transfers."""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from common.constants import SIZE_CACHE_TTL_SECONDS
from fileserver.transfer_counter import TransferCounter

logger = logging.getLogger(__name__)


def compute_directory_size(path: str) -> int:
    """
    Recursively sum the sizes of all files below a directory.

    Entries that cannot be read count as 0 and do not stop the walk.
    Symlinked directories are not descended into.

    Args:
        path: Absolute directory path

    Returns:
        Total size in bytes
    """
    total = 0
    try:
        with os.scandir(path) as entries:
            for entry in entries:
                try:
                    if entry.is_dir(follow_symlinks=False):
                        total += compute_directory_size(entry.path)
                    else:
                        total += entry.stat().st_size
                except OSError:
                    continue
    except OSError:
        return total
    return total


@dataclass
class SizeCacheEntry:
    size: int
    computed_at: float


class DirectorySizeCache:
    """
    Memoizes recursive directory sizes keyed by absolute path.

    Entries younger than the TTL are served without disk access. While any
    transfer is active, stale or missing entries are not recomputed: the
    last known size (or 0) is returned instead, to keep the disk free for
    the transfer. There is no eviction and no invalidation on writes; a
    stale size heals on the next expiry once transfers are idle.
    """

    def __init__(
        self,
        counter: TransferCounter,
        ttl: float = SIZE_CACHE_TTL_SECONDS,
        walker: Callable[[str], int] = compute_directory_size,
        clock: Callable[[], float] = time.monotonic
    ):
        self.counter = counter
        self.ttl = ttl
        self._walker = walker
        self._clock = clock
        self._entries: Dict[str, SizeCacheEntry] = {}

    def get_cached(self, path: str) -> Optional[SizeCacheEntry]:
        return self._entries.get(path)

    def __len__(self) -> int:
        return len(self._entries)

    def _is_fresh(self, entry: SizeCacheEntry) -> bool:
        return self._clock() - entry.computed_at < self.ttl

    async def size_of(self, path: str) -> int:
        """
        Return the size of a directory, walking the disk only when needed.

        Args:
            path: Absolute directory path (also the cache key)

        Returns:
            Size in bytes
        """
        cached = self._entries.get(path)

        if self.counter.busy:
            return cached.size if cached else 0

        if cached and self._is_fresh(cached):
            return cached.size

        size = await asyncio.to_thread(self._walker, path)
        self._entries[path] = SizeCacheEntry(size=size, computed_at=self._clock())
        logger.debug(f"Computed directory size {path}: {size} bytes")
        return size
