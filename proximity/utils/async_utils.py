"""
Async helpers shared by stores and services.

- ``run_with_timeout``: bound an awaitable with asyncio cancellation.
- ``SingleFlight``: collapse concurrent calls for the same key into one.
"""

import asyncio
import logging
from functools import partial
from typing import Awaitable, Callable, Dict, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_with_timeout(awaitable: Awaitable[T], timeout: Optional[float]) -> T:
    """
    Await ``awaitable`` for at most ``timeout`` seconds.

    The inner task is cancelled when the timeout expires and
    ``asyncio.TimeoutError`` is raised to the caller.
    """
    if timeout is None:
        return await awaitable
    return await asyncio.wait_for(awaitable, timeout=timeout)


class _Flight:
    __slots__ = ("task", "waiters")

    def __init__(self, task: asyncio.Task):
        self.task = task
        self.waiters = 0


class SingleFlight:
    """
    Per-key in-flight request map.

    The first caller for a key starts the coroutine in its own task; callers
    arriving while it is still running await that task instead of starting a
    duplicate. Every caller waits through ``asyncio.shield``, so cancelling
    one caller only detaches it. The shared task is cancelled once no caller
    is left waiting. Keys are released as soon as the call finishes, so
    results are never memoized beyond the in-flight window.
    """

    def __init__(self):
        self._inflight: Dict[str, _Flight] = {}

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    def _release(self, key: str, flight: _Flight, task: asyncio.Task) -> None:
        if self._inflight.get(key) is flight:
            del self._inflight[key]
        if not task.cancelled():
            # Mark retrieved so an unjoined failure does not warn at GC
            task.exception()

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        flight = self._inflight.get(key)
        if flight is None:
            flight = _Flight(asyncio.ensure_future(fn()))
            self._inflight[key] = flight
            flight.task.add_done_callback(partial(self._release, key, flight))
        else:
            logger.debug(f"Joining in-flight call for key {key[:12]}")

        flight.waiters += 1
        try:
            return await asyncio.shield(flight.task)
        except asyncio.CancelledError:
            if flight.waiters == 1 and not flight.task.done():
                # Last waiter gone: later callers start a fresh call
                if self._inflight.get(key) is flight:
                    del self._inflight[key]
                flight.task.cancel()
            raise
        finally:
            flight.waiters -= 1
