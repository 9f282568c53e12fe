"""Count of in-flight download and archive streams."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class TransferCounter:
    """
    Number of active download/archive streams in this process.

    The size cache consults it to skip recursive directory walks while
    transfers are running. Every acquire must be paired with exactly one
    release; use track() so the release happens on every exit path.
    """

    def __init__(self):
        self._active = 0

    @property
    def active(self) -> int:
        return self._active

    @property
    def busy(self) -> bool:
        return self._active > 0

    def acquire(self) -> int:
        self._active += 1
        logger.debug(f"Transfer started, active={self._active}")
        return self._active

    def release(self) -> int:
        if self._active == 0:
            logger.error("Transfer counter released more times than acquired")
            return 0
        self._active -= 1
        logger.debug(f"Transfer finished, active={self._active}")
        return self._active

    @asynccontextmanager
    async def track(self) -> AsyncIterator["TransferCounter"]:
        """
        Hold one transfer slot for the duration of the block.
        """
        self.acquire()
        try:
            yield self
        finally:
            self.release()
