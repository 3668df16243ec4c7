# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Persistence pool — timeouts, backpressure, error wrapping."""

import asyncio
import threading
import time

import pytest

from lifecycle.schemas import NotFoundError, PersistenceFailure
from lifecycle.workers import PersistencePool


class TestRun:

    def test_returns_result(self, pool):
        def add(a, b):
            return a + b

        assert asyncio.run(pool.run(add, 3, 4)) == 7

    def test_kwargs(self, pool):
        def greet(name, punct="!"):
            return f"hi {name}{punct}"

        assert asyncio.run(pool.run(greet, "ana", punct="?")) == "hi ana?"

    def test_runs_off_the_loop_thread(self, pool):
        async def run():
            loop_thread = threading.get_ident()
            worker_thread = await pool.run(threading.get_ident)
            return loop_thread, worker_thread

        loop_thread, worker_thread = asyncio.run(run())
        assert loop_thread != worker_thread


class TestFailures:

    def test_timeout_is_persistence_failure(self, pool):
        with pytest.raises(PersistenceFailure, match="timed out"):
            asyncio.run(pool.run(time.sleep, 0.5, timeout=0.05))
        assert pool.stats()["timed_out"] == 1

    def test_store_errors_are_wrapped(self, pool):
        def broken():
            raise OSError("disk full")

        with pytest.raises(PersistenceFailure, match="disk full"):
            asyncio.run(pool.run(broken))
        assert pool.stats()["failed"] == 1

    def test_lifecycle_errors_pass_through(self, pool):
        def missing():
            raise NotFoundError("user/currentWeek not found")

        with pytest.raises(NotFoundError):
            asyncio.run(pool.run(missing))

    def test_backpressure(self):
        small = PersistencePool("tiny", max_workers=1, max_pending=1, timeout=2.0)
        release = threading.Event()

        async def run():
            first = asyncio.ensure_future(small.run(release.wait, 1.0))
            await asyncio.sleep(0.01)
            try:
                with pytest.raises(PersistenceFailure, match="full"):
                    await small.run(lambda: None)
            finally:
                release.set()
            return await first

        try:
            assert asyncio.run(run()) is True
        finally:
            small.shutdown(wait=True)


class TestStats:

    def test_counts(self, pool):
        asyncio.run(pool.run(lambda: None))
        stats = pool.stats()
        assert stats["name"] == "test"
        assert stats["submitted"] == 1
        assert stats["pending"] == 0
