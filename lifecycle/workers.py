# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Persistence worker pool — store calls off the event loop, with timeouts.

Store implementations are synchronous (file I/O, SDK clients). The engine
awaits them through a small thread pool so an optimistic in-memory change
is visible to the caller before any write returns.

Rules:
  - every call has a timeout; a timeout is a PersistenceFailure
  - queue depth > max_pending -> PersistenceFailure (backpressure)
  - NotFoundError and validation errors pass through unchanged
  - any other exception from the store is wrapped in PersistenceFailure
"""

import asyncio
import functools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict

from lifecycle.schemas import LifecycleError, PersistenceFailure

logger = logging.getLogger("dreamweek.workers")


class PersistencePool:
    """A named thread pool with queue depth tracking and per-call timeouts."""

    def __init__(self, name: str = "store", max_workers: int = 2,
                 max_pending: int = 32, timeout: float = 5.0):
        self.name = name
        self.max_workers = max_workers
        self.max_pending = max_pending
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=f"dreamweek-{name}",
        )
        self._pending = 0
        self._lock = threading.Lock()
        self._total_submitted = 0
        self._total_failed = 0
        self._total_timed_out = 0

    async def run(self, fn: Callable, *args, timeout: float = None, **kwargs) -> Any:
        """Await fn(*args, **kwargs) on the pool."""
        with self._lock:
            if self._pending >= self.max_pending:
                self._total_failed += 1
                raise PersistenceFailure(
                    f"Pool '{self.name}' full ({self._pending}/{self.max_pending})"
                )
            self._pending += 1
            self._total_submitted += 1

        def _tracked():
            try:
                return fn(*args, **kwargs)
            finally:
                with self._lock:
                    self._pending -= 1

        limit = self.timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(loop.run_in_executor(self._executor, _tracked), limit)
        except asyncio.TimeoutError:
            with self._lock:
                self._total_timed_out += 1
            logger.warning("%s timed out after %.1fs", _name(fn), limit)
            raise PersistenceFailure(f"{_name(fn)} timed out after {limit}s") from None
        except LifecycleError:
            raise
        except Exception as e:
            with self._lock:
                self._total_failed += 1
            logger.error("%s failed: %s", _name(fn), e)
            raise PersistenceFailure(f"{_name(fn)} failed: {e}") from e

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "max_workers": self.max_workers,
                "pending": self._pending,
                "submitted": self._total_submitted,
                "failed": self._total_failed,
                "timed_out": self._total_timed_out,
            }

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait)
        logger.info("Persistence pool '%s' shut down", self.name)


def _name(fn: Callable) -> str:
    if isinstance(fn, functools.partial):
        fn = fn.func
    return getattr(fn, "__qualname__", repr(fn))
