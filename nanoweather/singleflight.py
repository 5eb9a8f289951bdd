"""
Per-key single-flight guard.

Concurrent calls for the same key share one in-progress future instead of
each starting its own upstream request.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable

logger = logging.getLogger(__name__)


class SingleFlight:
    def __init__(self):
        self._inflight: Dict[Hashable, asyncio.Future] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[Any]]) -> Any:
        """Run `fn` unless a call for `key` is already running; then join it."""
        pending = self._inflight.get(key)
        if pending is not None:
            logger.debug("Joining in-flight call for %r", key)
            return await asyncio.shield(pending)

        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await fn()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # retrieved here so a failure nobody joined is not reported as unhandled
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._inflight.pop(key, None)
