"""Bounded execution of pipeline runs.

Pipelines are synchronous and CPU bound, so each run is handed to a worker
thread. An ``asyncio.Semaphore`` sized like the executor keeps at most
``max_concurrent`` runs in flight; further requests wait up to
``queue_timeout`` seconds for a slot and are then rejected.

Runs never share an Image, so no locking is needed around the pipeline itself.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from icopipe.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProcessingPool:
    """Worker threads plus an admission semaphore for pipeline runs."""

    def __init__(self, settings: Settings) -> None:
        self._queue_timeout = settings.queue_timeout
        self._slots = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="image-pipeline",
        )
        self._lock = threading.Lock()
        self._running = 0
        self._waiting = 0
        self._rejected = 0

    # -- Public API --------------------------------------------------------

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Run ``func(*args)`` on a worker thread once a slot is free.

        Raises:
            TimeoutError: If no slot frees up within ``queue_timeout`` seconds.
        """
        async with self._slot():
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, func, *args)

    @property
    def active_count(self) -> int:
        """Runs currently executing on a worker thread."""
        with self._lock:
            return self._running

    @property
    def queue_depth(self) -> int:
        """Runs waiting for a slot."""
        with self._lock:
            return self._waiting

    @property
    def rejected_count(self) -> int:
        """Runs turned away because no slot freed up in time."""
        with self._lock:
            return self._rejected

    def shutdown(self) -> None:
        """Wait for running pipelines and stop the worker threads."""
        self._executor.shutdown(wait=True)

    # -- Internals ---------------------------------------------------------

    @asynccontextmanager
    async def _slot(self) -> AsyncIterator[None]:
        self._adjust(waiting=1)
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self._queue_timeout)
        except TimeoutError:
            self._adjust(rejected=1)
            logger.warning(
                "Rejected pipeline run: no slot within %.1fs (%d running)",
                self._queue_timeout,
                self.active_count,
            )
            raise
        finally:
            self._adjust(waiting=-1)
        self._adjust(running=1)

        try:
            yield
        finally:
            self._slots.release()
            self._adjust(running=-1)

    def _adjust(self, *, running: int = 0, waiting: int = 0, rejected: int = 0) -> None:
        with self._lock:
            self._running += running
            self._waiting += waiting
            self._rejected += rejected
